# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""
Compile worker entry point.

Started by the server once per build:

    python -m remote_build_service.worker --platform ios --result-fd 5

It reads a single request from stdin, builds the project and writes its
progress and the result as JSON lines to the result file descriptor.
Anything printed goes to the build log.
"""

import logging
import os
import sys

import click

from remote_build_service import models
from remote_build_service.builder import GenericPlatform
from remote_build_service.common.config import Config, init_config
from remote_build_service.common.logger import init_logging
from remote_build_service.scheduler import events

log = logging.getLogger(__name__)


class ResultChannel(object):
    """ Writes messages to the server's result pipe. """

    def __init__(self, stream):
        self.stream = stream

    def send(self, message):
        self.stream.write(message.encode())
        self.stream.flush()

    def progress(self, message_id, *message_args):
        self.send(events.WorkerProgress(message_id, message_args))

    def result(self, status, message_id=None, *message_args):
        self.send(events.WorkerResult(status, message_id, message_args))


def read_requests(stream):
    requests = []
    for line in stream:
        if not line.strip():
            continue
        message = events.decode(line)
        if not isinstance(message, events.WorkerRequest):
            raise ValueError("Expected a request, got %r" % message)
        requests.append(message)
    return requests


def load_config():
    try:
        conf, _ = init_config()
    except SystemError as e:
        # An installed worker has no conf/ directory next to it.
        print("Using default configuration: %s" % e, file=sys.stderr)
        conf = Config()
    return conf


def build(platform_name, requests, channel, conf):
    """ Run the build described by ``requests`` and report the result.

    Returns the process exit code.
    """
    if not requests:
        log.error("No build request received")
        return 1
    if len(requests) > 1:
        channel.result(models.ERROR, "BuildInvokedTwice")
        return 1

    request = requests[0]
    record = models.BuildRecord.from_json(request.record)
    record.build_lang = record.build_lang or request.language

    platform = GenericPlatform.create(platform_name or record.build_platform, conf)
    if not record.app_dir or not os.path.isdir(record.app_dir):
        channel.result(models.ERROR, "buildDirectoryNotFound", record.build_dir)
        return 1

    os.chdir(record.app_dir)
    # Cordova looks at $PWD before the real working directory
    os.environ["PWD"] = record.app_dir

    result = platform.compile(record, channel.progress)
    channel.send(result)
    return 0 if result.status == models.COMPLETE else 1


@click.command()
@click.option("--platform", "platform_name", default=None,
              help="Platform backend to build with, the record's platform by default.")
@click.option("--result-fd", type=int, required=True,
              help="File descriptor to write progress and result messages to.")
def main(platform_name, result_fd):
    conf = load_config()
    init_logging(conf)
    with os.fdopen(result_fd, "wb") as stream:
        channel = ResultChannel(stream)
        requests = read_requests(sys.stdin.buffer)
        code = build(platform_name, requests, channel, conf)
    sys.stdout.flush()
    sys.exit(code)


if __name__ == "__main__":
    main()
