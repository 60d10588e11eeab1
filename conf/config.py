# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from os import environ, path

# FIXME: workaround for this moment till confdir, builddir (installdir etc.) are
# declared properly somewhere/somehow
confdir = path.abspath(path.dirname(__file__))
# use parent dir as serverdir else fallback to current dir
serverdir = path.abspath(path.join(confdir, "..")) if confdir.endswith("conf") else confdir


class BaseConfiguration(object):
    DEBUG = False
    LANG = "en"
    # Where we should run when running "manage.py run" directly.
    HOST = "0.0.0.0"
    PORT = 3000

    SERVER_DIR = "~/.remote-build"
    MAX_BUILDS_IN_QUEUE = 10
    MAX_BUILDS_TO_KEEP = 20
    DELETE_BUILDS_ON_SHUTDOWN = True

    INSTALLED_CORDOVA_VERSION = "5.0.0"
    PLATFORMS = ["ios"]

    LOG_BACKEND = "console"
    LOG_LEVEL = "info"


class TestConfiguration(BaseConfiguration):
    LOG_LEVEL = "debug"
    DEBUG = True
    SERVER_DIR = environ.get(
        "RBS_TEST_SERVER_DIR", path.join(serverdir, "rbstest"))
    MAX_BUILDS_IN_QUEUE = 2
    MAX_BUILDS_TO_KEEP = 5


class ProdConfiguration(BaseConfiguration):
    SERVER_DIR = "/var/lib/remote-build-service"
    LOG_BACKEND = "file"
    LOG_FILE = "/var/log/remote-build-service/server.log"
    SSL_ENABLED = True
    SSL_CERTIFICATE_FILE = "/etc/remote-build-service/server.crt"
    SSL_CERTIFICATE_KEY_FILE = "/etc/remote-build-service/server.key"
    SSL_CA_CERTIFICATE_FILE = "/etc/remote-build-service/cacert.pem"


class DevConfiguration(BaseConfiguration):
    DEBUG = True
    LOG_LEVEL = "debug"
    SERVER_DIR = path.join(serverdir, "rbsdev")
    DELETE_BUILDS_ON_SHUTDOWN = False
