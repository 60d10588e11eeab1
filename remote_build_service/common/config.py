# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Configuration handler functions."""

from __future__ import absolute_import
import importlib.util
import os
import sys

from packaging.version import InvalidVersion, Version

from remote_build_service.common import logger


SUPPORTED_PLATFORMS = ("ios",)


def _default_config_file():
    # conf/config.py of a git checkout
    here = os.path.dirname(os.path.abspath(__file__))
    return os.path.join(here, os.pardir, os.pardir, "conf", "config.py")


def _load_config_module(config_file):
    spec = importlib.util.spec_from_file_location("rbs_runtime_config", config_file)
    if spec is None:
        raise SystemError("Configuration file {} was not found.".format(config_file))
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except (IOError, OSError):
        raise SystemError("Configuration file {} was not found.".format(config_file))
    return module


def init_config():
    """
    Configure the service and return the Config instance together with the
    configuration class it was created from.
    """
    config_file = "/etc/remote-build-service/config.py"
    config_section = "DevConfiguration"

    # automagically detect production environment:
    #   - existing and readable config_file presets ProdConfiguration
    if os.access(config_file, os.R_OK):
        config_section = "ProdConfiguration"
    else:
        config_file = _default_config_file()

    if "RBS_CONFIG_FILE" in os.environ:
        config_file = os.environ["RBS_CONFIG_FILE"]
    if "RBS_CONFIG_SECTION" in os.environ:
        config_section = os.environ["RBS_CONFIG_SECTION"]

    # TestConfiguration shall only be used for running tests
    if any("py.test" in arg or "pytest" in arg for arg in sys.argv):
        config_section = "TestConfiguration"

    config_module = _load_config_module(config_file)
    try:
        config_section_obj = getattr(config_module, config_section)
    except AttributeError:
        raise SystemError("Configuration section {} not found in {}.".format(
            config_section, config_file))

    conf = Config(config_section_obj)
    return conf, config_section_obj


class Config(object):
    """Class representing the remote build service configuration."""

    _defaults = {
        "debug": {
            "type": bool,
            "default": False,
            "desc": "Debug mode"},
        "host": {
            "type": str,
            "default": "0.0.0.0",
            "desc": "Server hostname"},
        "port": {
            "type": int,
            "default": 3000,
            "desc": "Server port"},
        "lang": {
            "type": str,
            "default": "en",
            "desc": "Language used for server side messages."},
        "server_dir": {
            "type": str,
            "default": "~/.remote-build",
            "desc": "Root directory for all server state. Builds live under "
                    "<server_dir>/remote-build/builds."},
        "max_builds_in_queue": {
            "type": int,
            "default": 10,
            "desc": "Number of builds allowed to wait for the compile slot."},
        "max_builds_to_keep": {
            "type": int,
            "default": 20,
            "desc": "Number of builds whose directories are retained on disk."},
        "delete_builds_on_shutdown": {
            "type": bool,
            "default": True,
            "desc": "Remove every build directory when the server stops."},
        "installed_cordova_version": {
            "type": str,
            "default": "5.0.0",
            "desc": "Newest Cordova version this server is able to build with."},
        "platforms": {
            "type": list,
            "default": ["ios"],
            "desc": "Platform backends enabled on this server."},
        "worker_command": {
            "type": list,
            "default": [],
            "desc": "Command used to start a compile worker. The default runs "
                    "remote_build_service.worker with the current interpreter."},
        "cordova_command": {
            "type": str,
            "default": "cordova",
            "desc": "Cordova CLI executable used by compile workers."},
        "log_backend": {
            "type": str,
            "default": None,
            "desc": "Log backend"},
        "log_file": {
            "type": str,
            "default": "",
            "desc": "Path to log file"},
        "log_level": {
            "type": str,
            "default": 0,
            "desc": "Log level"},
        "ssl_enabled": {
            "type": bool,
            "default": False,
            "desc": "Serve the API over HTTPS"},
        "ssl_certificate_file": {
            "type": str,
            "default": "",
            "desc": ""},
        "ssl_certificate_key_file": {
            "type": str,
            "default": "",
            "desc": ""},
        "ssl_ca_certificate_file": {
            "type": str,
            "default": "",
            "desc": ""},
    }

    def __init__(self, conf_section_obj=None):
        """
        Initialize the Config object with defaults and then override them
        with runtime values.
        """
        # set defaults
        for name, values in self._defaults.items():
            self.set_item(name, values["default"])

        if conf_section_obj is None:
            return

        # set values from the configuration class
        for key in dir(conf_section_obj):
            # skip keys starting with underscore
            if key.startswith("_"):
                continue
            # set item (lower key)
            self.set_item(key.lower(), getattr(conf_section_obj, key))

    def set_item(self, key, value):
        """
        Set value for configuration item. Creates the self._key = value
        attribute and self.key property to set/get/del the attribute.
        """
        if key == "set_item" or key.startswith("_"):
            raise Exception("Configuration item's name is not allowed: %s" % key)

        # customized check & set if there's a corresponding handler
        setifok_func = "_setifok_{}".format(key)
        if hasattr(self, setifok_func):
            getattr(self, setifok_func)(value)
            return

        # managed/registered configuration items
        if key in self._defaults:
            # type conversion for configuration item
            convert = self._defaults[key]["type"]
            if convert in [bool, int, list, str]:
                try:
                    setattr(self, key, convert(value))
                except (TypeError, ValueError):
                    raise TypeError("Configuration value conversion failed for name: %s" % key)
            # if type is None, do not perform any conversion
            elif convert is None:
                setattr(self, key, value)
            # unknown type/unsupported conversion
            else:
                raise TypeError("Unsupported type %s for configuration item name: %s" % (
                    convert, key))
        # passthrough for unmanaged configuration items
        else:
            setattr(self, key, value)

    @property
    def base_build_dir(self):
        return os.path.join(self.server_dir, "remote-build", "builds")

    def _setifok_server_dir(self, s):
        self.server_dir = os.path.abspath(os.path.expanduser(str(s)))

    def _setifok_max_builds_in_queue(self, i):
        if not isinstance(i, int):
            raise TypeError("max_builds_in_queue needs to be an int")
        if i < 0:
            raise ValueError("max_builds_in_queue must be >= 0")
        self.max_builds_in_queue = i

    def _setifok_max_builds_to_keep(self, i):
        if not isinstance(i, int):
            raise TypeError("max_builds_to_keep needs to be an int")
        if i < 0:
            raise ValueError("max_builds_to_keep must be >= 0")
        self.max_builds_to_keep = i

    def _setifok_installed_cordova_version(self, s):
        try:
            Version(str(s))
        except InvalidVersion:
            raise ValueError("installed_cordova_version is not a valid version: %s" % s)
        self.installed_cordova_version = str(s)

    def _setifok_platforms(self, platforms):
        if not isinstance(platforms, (list, tuple)):
            raise TypeError("platforms needs to be a list.")
        platforms = [str(p).lower() for p in platforms]
        for platform in platforms:
            if platform not in SUPPORTED_PLATFORMS:
                raise ValueError("Unsupported platform: %s." % platform)
        self.platforms = platforms

    def _setifok_worker_command(self, command):
        if isinstance(command, str):
            command = command.split()
        if not isinstance(command, (list, tuple)):
            raise TypeError("worker_command needs to be a list.")
        self.worker_command = [str(x) for x in command]

    def _setifok_log_backend(self, s):
        if s is None:
            s = "console"
        elif s not in logger.supported_log_backends():
            raise ValueError("Unsupported log backend")
        self.log_backend = str(s)

    def _setifok_log_file(self, s):
        if s is None:
            self.log_file = ""
        else:
            self.log_file = str(s)

    def _setifok_log_level(self, s):
        level = str(s).lower()
        self.log_level = logger.str_to_log_level(level)
