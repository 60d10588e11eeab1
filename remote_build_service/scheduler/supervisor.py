# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Runs one compile worker process per build and follows it to the end. """

import logging
import os
import subprocess
import threading

from remote_build_service import models
from remote_build_service.common.errors import WorkerCrashError
from remote_build_service.resources import format_message
from remote_build_service.scheduler import events

log = logging.getLogger(__name__)

# Seconds a worker gets to exit after SIGTERM before it is killed.
TERMINATE_TIMEOUT = 10


class WorkerHandle(object):
    """
    A running compile worker.

    The worker gets its request on stdin and reports progress and the result
    on a separate pipe whose file descriptor is passed as ``--result-fd``.
    Everything it prints to stdout or stderr is log output.
    """

    def __init__(self, command, cwd=None, env=None):
        read_fd, write_fd = os.pipe()
        try:
            self.process = subprocess.Popen(
                list(command) + ["--result-fd", str(write_fd)],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                pass_fds=(write_fd,),
                cwd=cwd,
                env=env,
            )
        except Exception:
            os.close(read_fd)
            raise
        finally:
            os.close(write_fd)
        self._results = os.fdopen(read_fd, "rb")
        self.terminated = False

    @property
    def pid(self):
        return self.process.pid

    @property
    def output(self):
        return self.process.stdout

    def send(self, message):
        """ Send ``message`` to the worker and close its stdin. """
        try:
            self.process.stdin.write(message.encode())
            self.process.stdin.flush()
        except (BrokenPipeError, OSError) as e:
            log.warning("Could not send %r to worker %s: %s" % (message.type, self.pid, e))
        finally:
            try:
                self.process.stdin.close()
            except (BrokenPipeError, OSError):
                pass

    def messages(self):
        """ Yields the worker's messages until it closes the result pipe. """
        for line in self._results:
            line = line.strip()
            if not line:
                continue
            try:
                yield events.decode(line)
            except ValueError as e:
                log.warning("Ignoring malformed message from worker %s: %s" % (self.pid, e))

    def wait(self, timeout=None):
        return self.process.wait(timeout=timeout)

    def terminate(self):
        if self.process.poll() is None:
            self.terminated = True
            self.process.terminate()
            try:
                self.process.wait(timeout=TERMINATE_TIMEOUT)
            except subprocess.TimeoutExpired:
                log.warning("Worker %s ignored SIGTERM, killing it" % self.pid)
                self.process.kill()
                self.process.wait()
        return self.process.returncode

    def close(self):
        self._results.close()


class BuildLogWriter(threading.Thread):
    """
    Copies a worker's output into the build log.

    The supervisor closes the log once the thread is done. When processes
    started by the worker keep the output open, the supervisor detach()es
    and the thread closes the log itself at end of output.
    """

    def __init__(self, stream, log_file):
        super(BuildLogWriter, self).__init__(name="build-log")
        self.daemon = True
        self.stream = stream
        self.log_file = log_file
        self._lock = threading.Lock()
        self._finished = False
        self._detached = False

    def run(self):
        try:
            for line in iter(self.stream.readline, b""):
                self.log_file.write(line.replace(b"\r\n", b"\n"))
                self.log_file.flush()
        finally:
            with self._lock:
                self._finished = True
                if self._detached:
                    self.log_file.close()

    def detach(self):
        """
        Hand the log over to the thread. Returns False when the thread is
        done already and the caller still owns the log.
        """
        with self._lock:
            if self._finished:
                return False
            self._detached = True
            return True


class WorkerSupervisor(object):
    """
    Launches the compile worker for a record and waits for its result.

    ``lock`` guards changes to the record; the scheduler passes the lock of
    its table.
    """

    def __init__(self, lock=None, language=None):
        self.lock = lock or threading.RLock()
        self.language = language

    def run(self, record, platform):
        with self.lock:
            record.update_status(models.BUILDING)
            request = events.WorkerRequest(record.json(), record.build_lang or self.language)

        log.info("Starting %s worker for build %s" % (platform.backend, record.id))
        log_file = open(record.log_path, "wb")
        owns_log = True
        try:
            try:
                worker = platform.create_worker_process()
            except (IOError, OSError) as e:
                log.error("Could not start worker for build %s: %s" % (record.id, e))
                with self.lock:
                    record.update_status(models.ERROR, "BuildFailedWithError", str(e))
                return record

            writer = BuildLogWriter(worker.output, log_file)
            writer.start()
            crash = None
            try:
                worker.send(request)
                try:
                    self._follow(record, worker)
                except WorkerCrashError as e:
                    crash = e
                else:
                    worker.terminate()
                returncode = worker.wait()
            finally:
                worker.close()

            if crash is not None:
                with self.lock:
                    if record.status == models.BUILDING:
                        log.error("Worker for build %s exited with %s before reporting a result" % (
                            record.id, returncode))
                        record.update_status(models.ERROR, crash.message_id, *crash.message_args)

            writer.join(TERMINATE_TIMEOUT)
            if writer.detach():
                log.warning("Output of build %s is still open after the worker exited, "
                            "leaving the log to its writer" % record.id)
                owns_log = False
            elif returncode and not worker.terminated:
                log_file.write((format_message(
                    "LoggedProcessTerminatedWithCode", [returncode], record.build_lang) + "\n").encode("utf-8"))
        finally:
            if owns_log:
                log_file.close()

        log.info("Build %s finished with status %s" % (record.id, record.status))
        return record

    def _follow(self, record, worker):
        """
        Apply the worker's messages to ``record`` until its result arrives.

        :raises WorkerCrashError: the result pipe closed without a result.
        """
        for message in worker.messages():
            if isinstance(message, events.WorkerProgress):
                log.debug("Build %s: %s %r" % (record.id, message.message_id, message.message_args))
                with self.lock:
                    record.update_status(models.BUILDING, message.message_id, *message.message_args)
            elif isinstance(message, events.WorkerResult):
                self._apply_result(record, message)
                return message
            else:
                log.warning("Unexpected %r from worker of build %s" % (message, record.id))
        raise WorkerCrashError("BuildFailedUnexpectedly")

    def _apply_result(self, record, result):
        with self.lock:
            if result.status not in models.RESULT_STATES:
                log.error("Worker of build %s reported unknown status %r" % (record.id, result.status))
                record.update_status(models.ERROR, "BuildInvalidResultStatus", result.status)
                return
            record.update_status(result.status, result.message_id, *result.message_args)
            record.build_successful = result.status == models.COMPLETE
