# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Generic platform backend.

A platform is used on both sides of the worker protocol. In the server it
validates app names, starts compile workers and packages finished builds
for download. In the worker process it runs the Cordova build itself.
"""

from abc import ABCMeta, abstractmethod
import json
import logging
import os
import re
import shlex
import shutil
import sys

from kobo.shortcuts import run

from remote_build_service import models
from remote_build_service.manifest import ProjectManifest
from remote_build_service.resources import format_message
from remote_build_service.scheduler.events import WorkerResult
from remote_build_service.scheduler.supervisor import WorkerHandle

log = logging.getLogger(__name__)

# Characters which break the native projects Cordova generates.
INVALID_APP_NAME_CHARS = ('"', "$", "&", "'", "<", "\\")

PLUGIN_XML_RE = re.compile(r"^plugins/([^/]+)/plugin\.xml$")


class GenericPlatform(metaclass=ABCMeta):
    """
    External API for platform backends

    Server side usage:
        platform = GenericPlatform.create("ios", conf)
        if platform.is_valid_app_name(name):
            worker = platform.create_worker_process()

    Worker side usage:
        result = platform.compile(record, reporter)

    where ``reporter(message_id, *message_args)`` forwards progress to the
    server.
    """

    backend = "generic"
    backends = {}

    def __init__(self, conf):
        self.conf = conf

    @classmethod
    def register_backend_class(cls, backend_class):
        GenericPlatform.backends[backend_class.backend] = backend_class

    @classmethod
    def create(cls, backend, conf):
        """
        :param backend: a string representing the platform e.g. 'ios'
        :param conf: instance of remote_build_service.common.config.Config
        """
        backend = (backend or "").lower()
        if backend in GenericPlatform.backends:
            return GenericPlatform.backends[backend](conf)
        raise ValueError("Platform backend='%s' not recognized" % backend)

    def can_service(self, record):
        return (record.build_platform or "").lower() == self.backend

    def invalid_app_name_characters(self):
        return list(INVALID_APP_NAME_CHARS)

    def is_valid_app_name(self, name):
        for char in name:
            if ord(char) < 32 or char in self.invalid_app_name_characters():
                return False
        return True

    @abstractmethod
    def package_artifact(self, record, output):
        """
        Write the downloadable output of a completed build to the binary
        file object ``output``.

        :raises NotFoundError: the build output is missing.
        """
        raise NotImplementedError()

    def worker_command(self):
        if self.conf.worker_command:
            return list(self.conf.worker_command)
        return [sys.executable, "-m", "remote_build_service.worker", "--platform", self.backend]

    def create_worker_process(self):
        """ Start a compile worker and return its WorkerHandle. """
        return WorkerHandle(self.worker_command())

    # Worker side

    def compile(self, record, reporter):
        """
        Build ``record.app_dir`` with Cordova. Runs inside the worker process.

        Returns the WorkerResult to report. Failures of the single steps end
        up as an ERROR result instead of an exception.
        """
        self.record = record
        self.reporter = reporter
        self.manifest = ProjectManifest.from_app_dir(record.app_dir)
        platform = record.build_platform

        try:
            reporter("AcquiringCordova")
            self.update_plugins()
            reporter("UpdatingPlatform", platform)
            self.before_prepare()
            self.add_or_prepare_platform()
            self.after_prepare()
            reporter("CopyingNativeOverrides")
            self.copy_native_overrides()
            self.before_compile()
            reporter("CordovaCompiling")
            self.compile_platform()
            self.after_compile()
            reporter("PackagingNativeApp")
            if self.is_device_build():
                self.package()
        except Exception as e:
            log.exception("Build %s failed" % record.id)
            return WorkerResult(models.ERROR, "BuildFailedWithError", [str(e)])

        print(format_message("DoneBuilding", [record.id], record.build_lang))
        return WorkerResult(models.COMPLETE)

    def before_prepare(self):
        pass

    def after_prepare(self):
        pass

    def before_compile(self):
        pass

    def after_compile(self):
        pass

    def package(self):
        pass

    def is_device_build(self):
        return "--device" in self.options()

    def options(self):
        return shlex.split(self.record.options or "")

    def cordova(self, *args, **kwargs):
        cmd = [self.conf.cordova_command] + list(args)
        return run(cmd, workdir=self.record.app_dir, show_cmd=True, stdout=True, **kwargs)

    def app_path(self, *parts):
        return os.path.join(self.record.app_dir, *parts)

    def deleted_plugins(self):
        change_list = self.record.change_list or {}
        plugins = []
        for path in change_list.get("deletedFiles") or []:
            # A plugin is deleted when its plugin.xml is.
            match = PLUGIN_XML_RE.match(path.replace("\\", "/").lstrip("/"))
            if match:
                plugins.append(match.group(1))
        return plugins

    def update_plugins(self):
        remote_plugins = self.app_path("remote", "plugins")
        if not os.path.isdir(remote_plugins):
            return

        try:
            for plugin in self.deleted_plugins():
                if not os.path.exists(self.app_path("plugins", plugin)):
                    # already gone along with a plugin depending on it
                    continue
                ret, _ = self.cordova("plugin", "remove", plugin, can_fail=True)
                if ret:
                    log.warning("Removing plugin %s failed with %s" % (plugin, ret))

            fetch_json = {}
            fetch_json_path = os.path.join(remote_plugins, "fetch.json")
            if os.path.exists(fetch_json_path):
                try:
                    with open(fetch_json_path) as f:
                        fetch_json = json.load(f)
                except ValueError:
                    log.warning("Ignoring malformed %s" % fetch_json_path)

            for plugin in sorted(os.listdir(remote_plugins)):
                new_folder = os.path.join(remote_plugins, plugin)
                if not os.path.isdir(new_folder):
                    continue
                installed_folder = self.app_path("plugins", plugin)
                if os.path.exists(installed_folder):
                    shutil.copytree(new_folder, installed_folder, dirs_exist_ok=True)
                    continue
                args = ["plugin", "add", new_folder]
                variables = (fetch_json.get(plugin) or {}).get("variables") or {}
                for key in sorted(variables):
                    args += ["--variable", "%s=%s" % (key, variables[key])]
                self.cordova(*args)
        finally:
            shutil.rmtree(remote_plugins, ignore_errors=True)

    def add_or_prepare_platform(self):
        platform = self.record.build_platform
        if not os.path.isdir(self.app_path("platforms")):
            os.makedirs(self.app_path("platforms"))
        if not os.path.isdir(self.app_path("platforms", platform)):
            # "platform add" prepares the platform as well
            self.cordova("platform", "add", platform)
        else:
            self.cordova("prepare", platform)

    def copy_native_overrides(self):
        platform = self.record.build_platform
        source = self.app_path("res", "native", platform)
        if not os.path.isdir(source):
            # projects from older tools keep them in res/cert
            source = self.app_path("res", "cert", platform)
        if os.path.isdir(source):
            shutil.copytree(source, self.app_path("platforms", platform), dirs_exist_ok=True)

    def compile_platform(self):
        configuration = "--debug" if self.record.configuration == "debug" else "--release"
        self.cordova("compile", self.record.build_platform, configuration, *self.options())
