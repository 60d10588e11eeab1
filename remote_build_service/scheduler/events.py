# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""
Messages exchanged between the scheduler and a compile worker.

Every message is a JSON object on a line of its own with a "type" key. The
scheduler writes one "request" to the worker's stdin; the worker writes any
number of "progress" messages followed by one "result" to its result pipe.
"""

import json


class WorkerMessage(object):
    """ Base class of all messages. Subclasses set ``type``. """

    type = None

    def json(self):
        raise NotImplementedError()

    def encode(self):
        data = self.json()
        data["type"] = self.type
        return (json.dumps(data) + "\n").encode("utf-8")

    def __eq__(self, other):
        return type(self) is type(other) and self.json() == other.json()

    def __ne__(self, other):
        return not self == other

    def __repr__(self):
        return "<%s %r>" % (self.__class__.__name__, self.json())


class WorkerRequest(WorkerMessage):
    type = "request"

    def __init__(self, record, language=None):
        # record is the BuildRecord.json() dict
        self.record = record
        self.language = language

    def json(self):
        return {"record": self.record, "language": self.language}

    @classmethod
    def from_json(cls, data):
        return cls(data["record"], data.get("language"))


class WorkerProgress(WorkerMessage):
    type = "progress"

    def __init__(self, message_id, message_args=None):
        self.message_id = message_id
        self.message_args = list(message_args or [])

    def json(self):
        return {"messageId": self.message_id, "messageArgs": self.message_args}

    @classmethod
    def from_json(cls, data):
        return cls(data.get("messageId"), data.get("messageArgs"))


class WorkerResult(WorkerMessage):
    type = "result"

    def __init__(self, status, message_id=None, message_args=None):
        self.status = status
        self.message_id = message_id
        self.message_args = list(message_args or [])

    def json(self):
        return {
            "status": self.status,
            "messageId": self.message_id,
            "messageArgs": self.message_args,
        }

    @classmethod
    def from_json(cls, data):
        return cls(data.get("status"), data.get("messageId"), data.get("messageArgs"))


_message_types = dict(
    (cls.type, cls) for cls in (WorkerRequest, WorkerProgress, WorkerResult))


def decode(line):
    """
    Parse one line of the protocol.

    :raises ValueError: the line is not JSON or has an unknown type.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8")
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("Worker message is not an object: %r" % line)
    try:
        cls = _message_types[data.get("type")]
    except KeyError:
        raise ValueError("Unknown worker message type: %r" % data.get("type"))
    return cls.from_json(data)
