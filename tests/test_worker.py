# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import io
import os

import mock
import pytest

from remote_build_service import models, worker
from remote_build_service.builder.ios import IOSPlatform
from remote_build_service.models import BuildRecord
from remote_build_service.scheduler import events
from tests import make_conf


class TestWorker:

    def setup_method(self, test_method):
        self.stream = io.BytesIO()
        self.channel = worker.ResultChannel(self.stream)

    def sent(self):
        return [events.decode(line) for line in self.stream.getvalue().splitlines()]

    def make_request(self, tmpdir, app_dir=True):
        record = BuildRecord(3, str(tmpdir), cordova_version="5.0.0", status=models.BUILDING)
        record.app_dir = str(tmpdir.join("cordovaApp"))
        if app_dir:
            tmpdir.mkdir("cordovaApp")
        return events.WorkerRequest(record.json(), "de")

    def test_channel(self):
        self.channel.progress("UpdatingPlatform", "ios")
        self.channel.result(models.ERROR, "BuildFailedWithError", "boom")
        assert self.sent() == [
            events.WorkerProgress("UpdatingPlatform", ["ios"]),
            events.WorkerResult(models.ERROR, "BuildFailedWithError", ["boom"]),
        ]

    def test_read_requests(self):
        request = events.WorkerRequest({"buildNumber": 1}, "en")
        stream = io.BytesIO(request.encode() + b"\n")
        assert worker.read_requests(stream) == [request]

    def test_read_requests_rejects_other_messages(self):
        stream = io.BytesIO(events.WorkerResult(models.COMPLETE).encode())
        with pytest.raises(ValueError):
            worker.read_requests(stream)

    def test_no_request(self, tmpdir):
        assert worker.build("ios", [], self.channel, make_conf(tmpdir)) == 1
        assert self.sent() == []

    def test_invoked_twice(self, tmpdir):
        request = self.make_request(tmpdir)
        assert worker.build("ios", [request, request], self.channel, make_conf(tmpdir)) == 1
        assert self.sent() == [events.WorkerResult(models.ERROR, "BuildInvokedTwice")]

    def test_missing_app_dir(self, tmpdir):
        request = self.make_request(tmpdir, app_dir=False)
        assert worker.build("ios", [request], self.channel, make_conf(tmpdir)) == 1
        assert self.sent() == [
            events.WorkerResult(models.ERROR, "buildDirectoryNotFound", [str(tmpdir)])]

    @mock.patch.dict(os.environ, {})
    @mock.patch("remote_build_service.worker.os.chdir")
    @mock.patch.object(IOSPlatform, "compile")
    def test_build(self, compile, chdir, tmpdir):
        compile.return_value = events.WorkerResult(models.COMPLETE)
        request = self.make_request(tmpdir)

        assert worker.build(None, [request], self.channel, make_conf(tmpdir)) == 0

        app_dir = str(tmpdir.join("cordovaApp"))
        chdir.assert_called_once_with(app_dir)
        assert os.environ["PWD"] == app_dir
        record, reporter = compile.call_args[0]
        assert record.id == 3
        assert record.build_lang == "de"
        assert record.app_dir == app_dir
        assert reporter == self.channel.progress
        assert self.sent() == [events.WorkerResult(models.COMPLETE)]

    @mock.patch.dict(os.environ, {})
    @mock.patch("remote_build_service.worker.os.chdir")
    @mock.patch.object(IOSPlatform, "compile")
    def test_build_failed(self, compile, chdir, tmpdir):
        compile.return_value = events.WorkerResult(
            models.ERROR, "BuildFailedWithError", ["cordova exited with 1"])
        request = self.make_request(tmpdir)
        assert worker.build("ios", [request], self.channel, make_conf(tmpdir)) == 1
        assert self.sent()[-1].message_args == ["cordova exited with 1"]
