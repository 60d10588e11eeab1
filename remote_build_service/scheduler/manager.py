# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Admission control, queueing and bookkeeping of builds.

Only one build compiles at a time. A submission is validated and its upload
saved on the request thread; extraction, project validation and the compile
itself continue on a background thread. When a compile is already running
the record waits in a FIFO queue and is picked up by the thread which
finishes the running compile.

All state (records, the compile slot, the queue and the metrics) is guarded
by a single re-entrant lock.
"""

import collections
import logging
import os
import threading
import xml.etree.ElementTree as ET

from packaging.version import InvalidVersion, Version

from remote_build_service import models
from remote_build_service.builder import GenericPlatform
from remote_build_service.common.errors import (
    NotFoundError, NotReadyError, ProjectValidationError, QueueCapacityError,
    RequestValidationError)
from remote_build_service.ingest import ArchiveIngestor
from remote_build_service.manifest import ProjectManifest
from remote_build_service.resources import format_message
from remote_build_service.retention import RetentionPolicy
from remote_build_service.scheduler.supervisor import WorkerSupervisor

log = logging.getLogger(__name__)

LOG_CHUNK_SIZE = 64 * 1024

# Query parameters with a meaning to the scheduler. The rest is kept on the
# record for the platform.
REQUEST_PARAMS = frozenset([
    "vcordova", "command", "cfg", "options", "buildNumber", "platform", "logLevel"])


class BuildScheduler(object):
    """ Owns every build record known to this server. """

    def __init__(self, conf, ingestor=None, retention=None, supervisor=None, platforms=None):
        self.conf = conf
        self.lock = threading.RLock()
        # build id -> BuildRecord
        self.builds = {}
        self.queue = collections.deque()
        self.current_build = None
        self.metrics = {
            "submitted": 0,
            "accepted": 0,
            "rejected": 0,
            "failed": 0,
            "succeeded": 0,
            "downloaded": 0,
        }
        self.ingestor = ingestor or ArchiveIngestor()
        self.retention = retention or RetentionPolicy(conf)
        self.supervisor = supervisor or WorkerSupervisor(self.lock, conf.lang)
        if platforms is None:
            platforms = dict((name, GenericPlatform.create(name, conf)) for name in conf.platforms)
        self.platforms = platforms

        # Build numbers start above the pid so that a restarted server does
        # not hand out the numbers of builds still on disk.
        self._last_id = os.getpid()
        self._threads = []

        if not os.path.isdir(conf.base_build_dir):
            os.makedirs(conf.base_build_dir)

    # Submission

    def submit(self, params, upload_stream, locale=None):
        """
        Accept a new build.

        :param params: the request's query parameters (vcordova, command,
            cfg, options, buildNumber, platform, logLevel).
        :param upload_stream: readable binary stream of the project archive.
        :param locale: the client's language.
        :raises QueueCapacityError: too many builds are waiting already.
        :raises RequestValidationError: the request can't be built.
        :return: the new BuildRecord. Failures while saving the upload are
            reported on the record, not raised.
        """
        with self.lock:
            self.metrics["submitted"] += 1

            if len(self.queue) >= self.conf.max_builds_in_queue:
                log.warning("Build queue is full (%d), rejecting submission" % len(self.queue))
                raise QueueCapacityError(format_message("BuildQueueFull", [len(self.queue)], locale))

            try:
                request = self._validate_request(params, locale)
            except RequestValidationError as e:
                self.metrics["rejected"] += 1
                log.info("Rejected build request: %s" % e)
                raise

            self.metrics["accepted"] += 1
            build_id = request.pop("id")
            if build_id is None:
                build_id = self._allocate_id()
            elif build_id in self.builds:
                log.info("Build %s replaces finished %r" % (build_id, self.builds[build_id]))

            build_dir = os.path.join(self.conf.base_build_dir, str(build_id))
            extra = dict((k, v) for k, v in params.items() if k not in REQUEST_PARAMS)
            record = models.BuildRecord(build_id, build_dir, build_lang=locale, params=extra, **request)
            self.builds[build_id] = record
            log.info("New build %r in %s" % (record, build_dir))

            try:
                if not os.path.isdir(build_dir):
                    os.makedirs(build_dir)
            except OSError as e:
                log.error("Failed to create %s: %s" % (build_dir, e))
                record.update_status(models.ERROR, "failedCreateDirectory", build_dir, str(e))
                self.metrics["failed"] += 1
                return record

        if not self.ingestor.save_upload(record, upload_stream):
            with self.lock:
                self.metrics["failed"] += 1
            return record

        self._start_thread(self._process, record)
        return record

    def _validate_request(self, params, locale):
        errors = []

        def error(key, *args):
            errors.append(format_message(key, args, locale))

        cordova_version = params.get("vcordova")
        if not cordova_version:
            error("BuildRequestMissingCordovaVersion")
        else:
            try:
                if Version(cordova_version) > Version(self.conf.installed_cordova_version):
                    error("BuildRequestUnsupportedCordovaVersion", cordova_version,
                          self.conf.installed_cordova_version)
            except InvalidVersion:
                error("BuildRequestInvalidCordovaVersion", cordova_version)

        command = params.get("command") or "build"
        if command != "build":
            error("BuildRequestUnsupportedCommand", command)

        configuration = params.get("cfg") or "release"
        if configuration not in models.CONFIGURATIONS:
            error("BuildRequestUnsupportedConfiguration", configuration)

        platform = (params.get("platform") or "ios").lower()
        if platform not in self.platforms:
            error("UnsupportedPlatform", platform)

        build_id = params.get("buildNumber") or None
        if build_id is not None:
            try:
                build_id = int(build_id)
                if build_id <= 0:
                    raise ValueError(build_id)
            except (TypeError, ValueError):
                error("BuildRequestInvalidBuildNumber", params.get("buildNumber"))
                build_id = None
            else:
                existing = self.builds.get(build_id)
                if existing is not None and existing.status not in models.DISPOSABLE_STATES:
                    error("BuildRequestBuildNumberInUse", build_id)

        if errors:
            raise RequestValidationError(errors)

        return {
            "id": build_id,
            "cordova_version": cordova_version,
            "build_command": command,
            "configuration": configuration,
            "options": params.get("options") or "",
            "build_platform": platform,
            "log_level": params.get("logLevel") or None,
        }

    def _allocate_id(self):
        self._last_id += 1
        while self._last_id in self.builds:
            self._last_id += 1
        return self._last_id

    def _start_thread(self, target, *args):
        thread = threading.Thread(target=target, args=args, name="build-%s" % args[0].id)
        thread.daemon = True
        with self.lock:
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(thread)
        thread.start()
        return thread

    def _process(self, record):
        try:
            self._ingest_and_compile(record)
        except Exception as e:
            log.exception("Processing build %s failed" % record.id)
            with self.lock:
                record.update_status(models.ERROR, "BuildFailedWithError", str(e))
                self.metrics["failed"] += 1

    def _ingest_and_compile(self, record):
        if not self.ingestor.extract(record):
            with self.lock:
                self.metrics["failed"] += 1
            return

        if not self.validate_project(record):
            with self.lock:
                self.metrics["rejected"] += 1
            return

        self.begin_compile(record)

    # Project validation

    def validate_project(self, record):
        """
        Check that the extracted project looks like something we can build.

        On failure the record becomes INVALID and False is returned.
        """
        platform = self._platform_for(record)
        try:
            app_name = self._check_project(record.app_dir, platform)
        except ProjectValidationError as e:
            log.info("Build %s is invalid: %s %r" % (record.id, e.message_id, e.message_args))
            with self.lock:
                record.update_status(models.INVALID, e.message_id, *e.message_args)
            return False

        with self.lock:
            record.app_name = app_name
        return True

    def _check_project(self, app_dir, platform):
        if not os.path.isfile(os.path.join(app_dir, "config.xml")):
            raise ProjectValidationError("InvalidCordovaAppMissingConfigXml")

        try:
            app_name = ProjectManifest.from_app_dir(app_dir).name()
        except (ET.ParseError, IOError, OSError) as e:
            raise ProjectValidationError("InvalidCordovaAppBadConfigXml", str(e))
        if app_name is None:
            raise ProjectValidationError("InvalidCordovaAppBadConfigXml", "<name> is missing")
        if not platform.is_valid_app_name(app_name):
            raise ProjectValidationError(
                "InvalidCordovaAppUnsupportedAppName", app_name,
                " ".join(platform.invalid_app_name_characters()))

        if not os.path.isdir(os.path.join(app_dir, "www")):
            raise ProjectValidationError("InvalidCordovaAppMissingWww")
        return app_name

    # Compiling

    def begin_compile(self, record):
        """
        Compile ``record`` now if nothing else compiles, queue it otherwise.

        The calling thread keeps compiling queued records until the queue
        is empty.
        """
        with self.lock:
            if self.current_build is not None:
                self.queue.append(record)
                log.info("Build %s queued behind %s, %d waiting" % (
                    record.id, self.current_build.id, len(self.queue)))
                return
            self.current_build = record

        while record is not None:
            try:
                self._compile(record)
            except Exception as e:
                log.exception("Compiling build %s failed" % record.id)
                with self.lock:
                    record.update_status(models.ERROR, "BuildFailedWithError", str(e))
                    self.metrics["failed"] += 1
            record = self.dequeue_next()

    def dequeue_next(self):
        """ Free the compile slot and hand it to the oldest queued record. """
        with self.lock:
            self.current_build = None
            if not self.queue:
                return None
            record = self.queue.popleft()
            self.current_build = record
            log.info("Build %s leaves the queue, %d waiting" % (record.id, len(self.queue)))
            return record

    def _compile(self, record):
        with self.lock:
            self.retention.purge(self.builds, protected=[self.current_build] + list(self.queue))
            if not record.app_dir or not os.path.isdir(record.app_dir):
                log.error("Build %s: directory %s is gone" % (record.id, record.app_dir))
                record.update_status(models.ERROR, "buildDirectoryNotFound", record.build_dir)
                self.metrics["failed"] += 1
                return

        try:
            self.supervisor.run(record, self._platform_for(record))
        except Exception as e:
            log.exception("Supervising build %s failed" % record.id)
            with self.lock:
                record.update_status(models.ERROR, "BuildFailedWithError", str(e))

        with self.lock:
            if record.status == models.COMPLETE:
                self.metrics["succeeded"] += 1
            elif record.status == models.INVALID:
                self.metrics["rejected"] += 1
            else:
                self.metrics["failed"] += 1

    def _platform_for(self, record):
        platform = self.platforms.get((record.build_platform or "").lower())
        if platform is not None:
            return platform
        for platform in self.platforms.values():
            if platform.can_service(record):
                return platform
        raise ValueError("No platform can build %r" % record)

    # Queries

    def _get(self, build_id, locale=None):
        try:
            build_id = int(build_id)
        except (TypeError, ValueError):
            build_id = None
        record = self.builds.get(build_id)
        if record is None:
            raise NotFoundError(format_message("BuildNotFound", [build_id], locale))
        return record

    def get_record(self, build_id, locale=None):
        """ Returns a copy of the record of ``build_id``, localized for ``locale``. """
        with self.lock:
            return self._get(build_id, locale).localize(locale)

    def list_all(self, locale=None):
        with self.lock:
            current = self.current_build
            return {
                "metrics": dict(self.metrics),
                "queued": len(self.queue),
                "currentBuild": current.localize(locale).json() if current else None,
                "queuedBuilds": [r.localize(locale).json() for r in self.queue],
                "allBuilds": [r.localize(locale).json() for r in self.builds.values()],
            }

    def open_build_log(self, build_id, offset=0, locale=None):
        """
        Returns an iterator over the bytes of the build log from ``offset``
        on. A build which has not started compiling yet has an empty log.
        """
        with self.lock:
            log_path = self._get(build_id, locale).log_path
        return self._read_log(log_path, max(int(offset or 0), 0))

    def _read_log(self, log_path, offset):
        if not os.path.isfile(log_path):
            return
        with open(log_path, "rb") as f:
            f.seek(offset)
            for chunk in iter(lambda: f.read(LOG_CHUNK_SIZE), b""):
                yield chunk

    def download_artifact(self, build_id, output, locale=None):
        """
        Write the packaged output of a completed build to ``output``.

        :raises NotFoundError: unknown build or missing build output.
        :raises NotReadyError: the build has not completed.
        """
        with self.lock:
            record = self._get(build_id, locale)
            if not models.is_valid_transition(record.status, models.DOWNLOADED):
                raise NotReadyError(
                    format_message("BuildNotCompleted", [record.status], locale), record.status)

        self._platform_for(record).package_artifact(record, output)

        with self.lock:
            record.update_status(models.DOWNLOADED)
            self.metrics["downloaded"] += 1
        log.info("Build %s downloaded" % record.id)
        return record

    def join(self, timeout=None):
        """ Wait for the background threads of all submissions. """
        with self.lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout)

    def shutdown(self):
        with self.lock:
            if not self.conf.delete_builds_on_shutdown:
                log.info("Keeping %d build(s) on disk" % len(self.builds))
                return
            log.info("Deleting %d build(s)" % len(self.builds))
            self.retention.delete_all_sync(self.builds)
