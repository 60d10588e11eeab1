# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Defines custom exceptions and error handling functions """

from __future__ import absolute_import

from flask import jsonify


class RequestValidationError(ValueError):
    """Raised when a build request is rejected before any record exists.

    ``errors`` holds every problem found, not only the first one.
    """

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super(RequestValidationError, self).__init__("; ".join(self.errors))


class QueueCapacityError(RuntimeError):
    pass


class RecordError(Exception):
    """Base for failures which get absorbed into a build record.

    They carry a message key and its arguments instead of a rendered string
    so that the record can be localized when it is read.
    """

    def __init__(self, message_id, *message_args):
        self.message_id = message_id
        self.message_args = list(message_args)
        super(RecordError, self).__init__(message_id, *message_args)


class IngestionError(RecordError):
    pass


class ProjectValidationError(RecordError):
    pass


class WorkerCrashError(RecordError):
    """Raised when a compile worker goes away without reporting a result."""


class NotReadyError(ValueError):
    def __init__(self, message, status):
        self.status = status
        super(NotReadyError, self).__init__(message)


class NotFoundError(ValueError):
    pass


def json_error(status, error, message, **extra):
    payload = {"status": status, "error": error, "message": message}
    payload.update(extra)
    response = jsonify(payload)
    response.status_code = status
    return response
