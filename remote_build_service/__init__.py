# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""The remote build service for Cordova projects.

The service accepts project archives from remote clients and is responsible
for a number of tasks:

- Providing a RESTful interface via which builds are submitted and their
  status, logs and outputs are queried.
- Verifying the submitted requests and projects are something it can build.
- Running one build at a time in a separate worker process and queueing
  the rest.
- Cleaning up the build directories of old builds.
"""

from __future__ import absolute_import
from importlib.metadata import PackageNotFoundError, version as _dist_version
from logging import getLogger

from flask import Flask

from remote_build_service.common.config import init_config
from remote_build_service.common.errors import (
    NotFoundError, NotReadyError, QueueCapacityError, RequestValidationError,
    json_error)
from remote_build_service.common.logger import init_logging, level_flags
from remote_build_service.resources import format_message

try:
    version = _dist_version("remote-build-service")
except PackageNotFoundError:
    version = "unknown"
api_version = 1

log = getLogger(__name__)


def create_app(conf=None, config_section=None, debug=False, verbose=False, quiet=False):
    """
    Create the Flask application together with the BuildScheduler behind
    it. Without ``conf`` the configuration is loaded with init_config().
    """
    from remote_build_service.scheduler.manager import BuildScheduler
    from remote_build_service.web.views import register_api

    if conf is None:
        conf, config_section = init_config()

    init_logging(conf)
    # logging (intended for the command line interface, see manage.py)
    if debug:
        log.setLevel(level_flags["debug"])
    elif verbose:
        log.setLevel(level_flags["verbose"])
    elif quiet:
        log.setLevel(level_flags["quiet"])

    app = Flask(__name__)
    if config_section is not None:
        app.config.from_object(config_section)
    app.config["RBS_CONF"] = conf

    scheduler = BuildScheduler(conf)
    app.extensions["build_scheduler"] = scheduler

    register_error_handlers(app)
    register_api(app, scheduler)
    log.info("Remote build service %s serving %s" % (version, ", ".join(conf.platforms)))
    return app


def register_error_handlers(app):
    from remote_build_service.web.utils import get_locale

    @app.errorhandler(RequestValidationError)
    def validationerror_error(e):
        """Flask error handler for RequestValidationError exceptions"""
        return json_error(400, "Bad Request", format_message("InvalidBuildRequest", None, get_locale()),
                          errors=e.errors)

    @app.errorhandler(NotFoundError)
    def notfound_error(e):
        """Flask error handler for NotFoundError exceptions"""
        return json_error(404, "Not Found", str(e))

    @app.errorhandler(NotReadyError)
    def notready_error(e):
        """Flask error handler for NotReadyError exceptions"""
        return json_error(409, "Conflict", str(e), buildStatus=e.status)

    @app.errorhandler(QueueCapacityError)
    def queuecapacity_error(e):
        """Flask error handler for QueueCapacityError exceptions"""
        return json_error(503, "Service Unavailable", str(e), errors=[str(e)])

    @app.errorhandler(RuntimeError)
    def runtimeerror_error(e):
        """Flask error handler for RuntimeError exceptions"""
        log.exception("RuntimeError exception raised")
        return json_error(500, "Internal Server Error", str(e))
