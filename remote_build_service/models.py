# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" The build record and its status codes. """

import copy
import os
from datetime import datetime, timezone

from remote_build_service.resources import format_message


# The archive is being streamed to disk.
UPLOADING = "uploading"
# The archive is on disk and waits to be extracted.
UPLOADED = "uploaded"
# The project is extracted; it is validated next and then either compiles or
# waits in the queue for the compile slot.
EXTRACTED = "extracted"
# The project is not something we can build (no config.xml, no www, ...).
INVALID = "invalid"
# A worker process owns the record.
BUILDING = "building"
# All is good, the artifact may be downloaded.
COMPLETE = "complete"
# Something failed.
ERROR = "error"
# The artifact was handed to a client at least once.
DOWNLOADED = "downloaded"
# Post-build device actions. Nothing in the scheduler sets these, but records
# may carry them and retention must know about them.
EMULATED = "emulated"
RUNNING = "running"
INSTALLED = "installed"
DEBUGGING = "debugging"
DELETED = "deleted"

BUILD_STATES = (
    UPLOADING, UPLOADED, EXTRACTED, INVALID, BUILDING, COMPLETE, ERROR,
    DOWNLOADED, EMULATED, RUNNING, INSTALLED, DEBUGGING, DELETED,
)

# Edges of the scheduling state machine. BuildRecord.update_status does not
# look at this; the scheduler checks downloads with is_valid_transition.
TRANSITIONS = {
    UPLOADING: (UPLOADED, ERROR),
    UPLOADED: (EXTRACTED, ERROR),
    EXTRACTED: (BUILDING, INVALID, ERROR),
    BUILDING: (BUILDING, COMPLETE, ERROR, INVALID),
    COMPLETE: (DOWNLOADED,),
    DOWNLOADED: (DOWNLOADED,),
    ERROR: (),
    INVALID: (),
}

# Statuses in which a record is finished as far as scheduling goes and its
# build directory may be reclaimed.
DISPOSABLE_STATES = frozenset([COMPLETE, DOWNLOADED, DELETED, ERROR, EMULATED, INVALID])

# Build results a worker is allowed to report.
RESULT_STATES = frozenset([COMPLETE, ERROR, INVALID])

CONFIGURATIONS = ("debug", "release", "distribution")


def is_valid_transition(old_status, new_status):
    return new_status in TRANSITIONS.get(old_status, ())


def _utcnow():
    return datetime.now(timezone.utc)


def _isoformat(value):
    return value.isoformat() if value else None


def _parse_datetime(value):
    if not value:
        return None
    return datetime.fromisoformat(value)


class BuildRecord(object):
    """ Everything known about one build, from upload to download.

    The record is mutated in place by every stage of the pipeline and is sent
    as a whole to the compile worker, which rebuilds it with from_json().
    """

    # attribute name -> key used on the wire
    _json_keys = (
        ("id", "buildNumber"),
        ("status", "status"),
        ("submission_time", "submissionTime"),
        ("status_time", "statusTime"),
        ("cordova_version", "vcordova"),
        ("build_command", "buildCommand"),
        ("configuration", "configuration"),
        ("options", "options"),
        ("build_platform", "buildPlatform"),
        ("build_lang", "buildLang"),
        ("log_level", "logLevel"),
        ("build_dir", "buildDir"),
        ("tgz_file_path", "tgzFilePath"),
        ("app_dir", "appDir"),
        ("app_name", "appName"),
        ("change_list", "changeList"),
        ("build_successful", "buildSuccessful"),
        ("message_id", "messageId"),
        ("message_args", "messageArgs"),
        ("message", "message"),
    )

    def __init__(self, id, build_dir, cordova_version=None, build_command="build",
                 configuration="release", options="", build_platform="ios",
                 build_lang=None, log_level=None, status=UPLOADING, params=None):
        self.id = id
        self.status = status
        self.cordova_version = cordova_version
        self.build_command = build_command
        self.configuration = configuration
        self.options = options or ""
        self.build_platform = build_platform
        self.build_lang = build_lang
        self.log_level = log_level
        self.build_dir = build_dir
        # The rest of the submission query, for platform specific options.
        self.params = dict(params or {})

        self.submission_time = _utcnow()
        self.status_time = self.submission_time
        self.tgz_file_path = None
        self.app_dir = None
        self.app_name = None
        self.change_list = None
        self.build_successful = False
        self.message_id = None
        self.message_args = None
        self.message = None

    def update_status(self, status, message_id=None, *message_args):
        """ Set the status along with an optional message key and arguments.

        The transition itself is not checked here.
        """
        self.status = status
        self.message_id = message_id
        self.message_args = list(message_args) if message_args else None
        # only set on the copies localize() returns
        self.message = None
        self.status_time = _utcnow()

    def localize(self, locale=None):
        """
        Returns a copy of the record with ``message`` rendered in ``locale``
        (or the record's language). The record itself is not changed.
        """
        locale = locale or self.build_lang
        localized = copy.copy(self)
        if self.message_id:
            localized.message = format_message(self.message_id, self.message_args, locale)
        else:
            localized.message = format_message("Build-" + self.status, None, locale)
        return localized

    @property
    def log_path(self):
        return os.path.join(self.build_dir, "build.log")

    def json(self):
        data = {}
        for attr, key in self._json_keys:
            value = getattr(self, attr)
            if attr in ("submission_time", "status_time"):
                value = _isoformat(value)
            data[key] = value
        return data

    @classmethod
    def from_json(cls, data):
        """ Rebuild a record from json(), as done on the worker side. """
        record = cls(id=data["buildNumber"], build_dir=data["buildDir"])
        for attr, key in cls._json_keys:
            if key not in data:
                continue
            value = data[key]
            if attr in ("submission_time", "status_time"):
                value = _parse_datetime(value)
            setattr(record, attr, value)
        return record

    def __repr__(self):
        return "<BuildRecord %s, platform %r, status %r>" % (
            self.id, self.build_platform, self.status)
