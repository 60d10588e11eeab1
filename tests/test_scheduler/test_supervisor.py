# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import json
import os

import mock
import pytest

from remote_build_service import models
from remote_build_service.builder.ios import IOSPlatform
from remote_build_service.common.errors import WorkerCrashError
from remote_build_service.models import BuildRecord
from remote_build_service.scheduler import events
from remote_build_service.scheduler.supervisor import WorkerSupervisor
from tests import make_conf, wait_for, write_worker_script


class TestWorkerSupervisor:

    def setup_method(self, test_method):
        self.supervisor = WorkerSupervisor(language="en")

    def run_worker(self, tmpdir, body):
        command = write_worker_script(tmpdir, body)
        platform = IOSPlatform(make_conf(tmpdir, worker_command=command))
        build_dir = tmpdir.mkdir("build")
        record = BuildRecord(9, str(build_dir), cordova_version="5.0.0")
        record.app_dir = str(build_dir.mkdir("cordovaApp"))
        self.supervisor.run(record, platform)
        return record

    def read_log(self, record):
        with open(record.log_path) as f:
            return f.read()

    def test_complete(self, tmpdir):
        record = self.run_worker(tmpdir, """
            print("building %s\\r" % record["buildNumber"])
            print("language %s" % request["language"])
            sys.stdout.flush()
            send({"type": "result", "status": "complete", "messageId": None, "messageArgs": []})
            """)
        assert record.status == models.COMPLETE
        assert record.build_successful
        log = self.read_log(record)
        assert "building 9\n" in log
        assert "\r" not in log
        assert "language en" in log

    def test_progress_then_error(self, tmpdir):
        record = self.run_worker(tmpdir, """
            send({"type": "progress", "messageId": "UpdatingPlatform", "messageArgs": ["ios"]})
            send({"type": "result", "status": "error",
                  "messageId": "BuildFailedWithError", "messageArgs": ["xcodebuild failed"]})
            """)
        assert record.status == models.ERROR
        assert record.message_id == "BuildFailedWithError"
        assert record.message_args == ["xcodebuild failed"]
        assert not record.build_successful

    def test_progress_updates_record(self, tmpdir):
        seen = []
        original = BuildRecord.update_status

        def update_status(record, status, message_id=None, *args):
            seen.append((status, message_id))
            return original(record, status, message_id, *args)

        with mock.patch.object(BuildRecord, "update_status", update_status):
            self.run_worker(tmpdir, """
                send({"type": "progress", "messageId": "CordovaCompiling", "messageArgs": []})
                send({"type": "result", "status": "complete", "messageId": None, "messageArgs": []})
                """)
        assert seen == [
            (models.BUILDING, None),
            (models.BUILDING, "CordovaCompiling"),
            (models.COMPLETE, None),
        ]

    def test_worker_crash(self, tmpdir):
        record = self.run_worker(tmpdir, """
            print("about to crash")
            sys.stdout.flush()
            sys.exit(3)
            """)
        assert record.status == models.ERROR
        assert record.message_id == "BuildFailedUnexpectedly"
        log = self.read_log(record)
        assert "about to crash" in log
        assert "Process terminated with exit code 3" in log

    def test_invalid_result_status(self, tmpdir):
        record = self.run_worker(tmpdir, """
            send({"type": "result", "status": "emulated", "messageId": None, "messageArgs": []})
            """)
        assert record.status == models.ERROR
        assert record.message_id == "BuildInvalidResultStatus"
        assert record.message_args == ["emulated"]

    def test_invalid_result(self, tmpdir):
        record = self.run_worker(tmpdir, """
            send({"type": "result", "status": "invalid",
                  "messageId": "InvalidCordovaAppMissingWww", "messageArgs": []})
            """)
        assert record.status == models.INVALID

    def test_worker_terminated_after_result(self, tmpdir):
        pid_file = tmpdir.join("pid")
        record = self.run_worker(tmpdir, """
            with open(%r, "w") as f:
                f.write(str(os.getpid()))
            send({"type": "result", "status": "complete", "messageId": None, "messageArgs": []})
            time.sleep(60)
            """ % str(pid_file))
        assert record.status == models.COMPLETE
        pid = int(pid_file.read())
        # the worker was reaped, so the pid is gone
        try:
            os.kill(pid, 0)
            alive = True
        except OSError:
            alive = False
        assert not alive
        assert "exit code" not in self.read_log(record)

    def test_request_carries_record(self, tmpdir):
        request_file = tmpdir.join("request.json")
        record = self.run_worker(tmpdir, """
            with open(%r, "w") as f:
                json.dump(request, f)
            send({"type": "result", "status": "complete", "messageId": None, "messageArgs": []})
            """ % str(request_file))
        request = json.loads(request_file.read())
        assert request["type"] == "request"
        assert request["record"]["buildNumber"] == 9
        assert request["record"]["status"] == models.BUILDING
        assert request["record"]["appDir"] == record.app_dir

    @mock.patch("remote_build_service.scheduler.supervisor.TERMINATE_TIMEOUT", 0.5)
    def test_output_held_open_by_child(self, tmpdir):
        record = self.run_worker(tmpdir, """
            import subprocess
            subprocess.Popen([sys.executable, "-c",
                              "import sys, time; time.sleep(2); print('late output'); sys.stdout.flush()"])
            send({"type": "result", "status": "complete", "messageId": None, "messageArgs": []})
            """)
        assert record.status == models.COMPLETE
        wait_for(lambda: "late output" in self.read_log(record))

    def test_result_pipe_closed_without_result(self):
        record = BuildRecord(9, "/tmp/builds/9")
        worker = mock.Mock()
        worker.messages.return_value = iter([events.WorkerProgress("CordovaCompiling", [])])
        with pytest.raises(WorkerCrashError) as excinfo:
            self.supervisor._follow(record, worker)
        assert excinfo.value.message_id == "BuildFailedUnexpectedly"
        assert record.message_id == "CordovaCompiling"
