# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""
Logging functions.

At the beginning of the server's process, init_logging needs to be called:

    init_logging(conf)

Then in any submodule, just grab a module logger:

    import logging
    log = logging.getLogger(__name__)
"""

from __future__ import absolute_import
import logging

levels = {
    "debug": logging.DEBUG,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
}

# Used by the command line interface to tune verbosity.
level_flags = {
    "debug": logging.DEBUG,
    "verbose": logging.INFO,
    "quiet": logging.ERROR,
}

log_format = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"


def str_to_log_level(level):
    """
    Returns internal representation of logging level defined
    by the string `level`.

    Available levels are: debug, info, warning, error
    """
    if level not in levels:
        return logging.NOTSET

    return levels[level]


def supported_log_backends():
    return ("console", "file")


def init_logging(conf):
    """
    Initializes logging according to configuration file.
    """
    log_backend = conf.log_backend

    if not log_backend or log_backend == "console":
        logging.basicConfig(level=conf.log_level, format=log_format)
        log = logging.getLogger()
        log.setLevel(conf.log_level)
    else:
        logging.basicConfig(filename=conf.log_file, level=conf.log_level, format=log_format)
        log = logging.getLogger()
        log.setLevel(conf.log_level)

    # werkzeug logs every request at INFO, keep it at the configured level
    # only when debugging.
    if conf.log_level != logging.DEBUG:
        logging.getLogger("werkzeug").setLevel(logging.WARNING)
