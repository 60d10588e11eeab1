# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import json

import pytest

from remote_build_service.scheduler import events


class TestWorkerMessages:

    def test_encode_is_one_json_line(self):
        data = events.WorkerResult("complete").encode()
        assert data.endswith(b"\n")
        assert data.count(b"\n") == 1
        assert json.loads(data.decode("utf-8")) == {
            "type": "result", "status": "complete", "messageId": None, "messageArgs": []}

    def test_decode(self):
        message = events.decode(
            b'{"type": "progress", "messageId": "UpdatingPlatform", "messageArgs": ["ios"]}\n')
        assert message == events.WorkerProgress("UpdatingPlatform", ["ios"])

    def test_request(self):
        request = events.WorkerRequest({"buildNumber": 3}, "en")
        assert events.decode(request.encode()) == request

    @pytest.mark.parametrize("line", [
        "not json",
        "[1, 2]",
        '{"type": "unknown"}',
        '{"status": "complete"}',
    ])
    def test_decode_invalid(self, line):
        with pytest.raises(ValueError):
            events.decode(line)
