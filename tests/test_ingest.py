# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import io
import json
import os
import stat

import pytest
from werkzeug.exceptions import ClientDisconnected

from remote_build_service import models
from remote_build_service.ingest import ArchiveIngestor, deleted_file_path
from remote_build_service.models import BuildRecord
from tests import make_tgz, project_files


class BrokenStream(object):
    def read(self, size=-1):
        raise IOError("connection reset")


class DisconnectedStream(object):
    def read(self, size=-1):
        raise ClientDisconnected()


class TestDeletedFilePath:

    @pytest.mark.parametrize("deleted, expected", [
        ("merges/ios/foo.png", "merges/ios/foo.png"),
        ("res/icons/ios/icon.png", "res/icons/ios/icon.png"),
        ("index.html", "www/index.html"),
        ("js\\index.js", "www/js/index.js"),
        ("css/app.css", "www/css/app.css"),
    ])
    def test_mapping(self, deleted, expected):
        assert deleted_file_path("/app", deleted) == os.path.join("/app", *expected.split("/"))

    @pytest.mark.parametrize("deleted", ["", "../../etc/passwd", "res/../../x"])
    def test_outside_of_project(self, deleted):
        assert deleted_file_path("/app", deleted) is None


class TestArchiveIngestor:

    def setup_method(self, test_method):
        self.ingestor = ArchiveIngestor()

    def make_record(self, tmpdir, build_id=7):
        build_dir = tmpdir.mkdir(str(build_id))
        return BuildRecord(build_id, str(build_dir))

    def test_save_upload(self, tmpdir):
        record = self.make_record(tmpdir)
        data = make_tgz(project_files())
        assert self.ingestor.save_upload(record, io.BytesIO(data))
        assert record.status == models.UPLOADED
        assert record.tgz_file_path == os.path.join(record.build_dir, "upload_7.tgz")
        with open(record.tgz_file_path, "rb") as f:
            assert f.read() == data

    def test_save_upload_failure(self, tmpdir):
        record = self.make_record(tmpdir)
        assert not self.ingestor.save_upload(record, BrokenStream())
        assert record.status == models.ERROR
        assert record.message_id == "errorSavingTgz"
        assert record.message_args[1] == "connection reset"

    def test_client_disconnected(self, tmpdir):
        record = self.make_record(tmpdir)
        assert not self.ingestor.save_upload(record, DisconnectedStream())
        assert record.status == models.ERROR
        assert record.message_id == "errorSavingTgz"
        assert record.message_args[0] == record.tgz_file_path

    def test_extract(self, tmpdir):
        record = self.make_record(tmpdir)
        files = project_files(extra={".cordova/config.json": "{}"})
        assert self.ingestor.ingest(record, io.BytesIO(make_tgz(files, directories=["www"])))

        assert record.status == models.EXTRACTED
        assert record.app_dir == os.path.join(record.build_dir, "cordovaApp")
        # the top level directory of the archive is gone
        assert os.path.isfile(os.path.join(record.app_dir, "config.xml"))
        assert os.path.isfile(os.path.join(record.app_dir, "www", "js", "index.js"))
        assert not os.path.exists(os.path.join(record.app_dir, ".cordova", "config.json"))
        assert record.change_list is None

    def test_extracted_mode(self, tmpdir):
        record = self.make_record(tmpdir)
        self.ingestor.ingest(record, io.BytesIO(make_tgz(project_files(), directories=["www"])))
        for path in (os.path.join(record.app_dir, "www"),
                     os.path.join(record.app_dir, "www", "index.html")):
            assert stat.S_IMODE(os.stat(path).st_mode) == 0o777

    def test_skips_entries_outside_of_project(self, tmpdir):
        record = self.make_record(tmpdir)
        files = project_files(extra={"../../escaped.txt": "nope"})
        assert self.ingestor.ingest(record, io.BytesIO(make_tgz(files)))
        assert not tmpdir.join("escaped.txt").exists()

    def test_change_list(self, tmpdir):
        record = self.make_record(tmpdir)
        # first, full upload
        files = project_files(extra={"merges/ios/foo.png": "png", "www/old.html": "old"})
        assert self.ingestor.ingest(record, io.BytesIO(make_tgz(files)))
        assert os.path.exists(os.path.join(record.app_dir, "merges", "ios", "foo.png"))

        # then an incremental one over the same directory
        change_list = {
            "deletedFiles": ["merges/ios/foo.png", "old.html", "never/existed.js"],
            "changedFiles": ["index.html"],
            "addedPlugins": [],
            "deletedPlugins": [],
        }
        files = {"www/index.html": "<html>new</html>", "changeList.json": json.dumps(change_list)}
        record.update_status(models.UPLOADING)
        assert self.ingestor.ingest(record, io.BytesIO(make_tgz(files)))

        assert record.status == models.EXTRACTED
        assert record.change_list == change_list
        assert not os.path.exists(os.path.join(record.app_dir, "merges", "ios", "foo.png"))
        assert not os.path.exists(os.path.join(record.app_dir, "www", "old.html"))
        with open(os.path.join(record.app_dir, "www", "index.html")) as f:
            assert f.read() == "<html>new</html>"
        # untouched files of the previous upload are still there
        assert os.path.exists(os.path.join(record.app_dir, "config.xml"))

        # applying the same change list again is harmless
        self.ingestor._apply_change_list(record)
        assert os.path.exists(os.path.join(record.app_dir, "config.xml"))

    def test_bad_change_list(self, tmpdir):
        record = self.make_record(tmpdir)
        files = project_files(extra={"changeList.json": "{not json"})
        assert not self.ingestor.ingest(record, io.BytesIO(make_tgz(files)))
        assert record.status == models.ERROR
        assert record.message_id == "changeListParseError"

    @pytest.mark.parametrize("change_list", [
        {"deletedFiles": [None]},
        {"deletedFiles": "index.html"},
        [1, 2],
        None,
    ])
    def test_malformed_change_list(self, tmpdir, change_list):
        record = self.make_record(tmpdir)
        files = project_files(extra={"changeList.json": json.dumps(change_list)})
        assert not self.ingestor.ingest(record, io.BytesIO(make_tgz(files)))
        assert record.status == models.ERROR
        assert record.message_id == "changeListParseError"
        assert record.change_list is None

    def test_corrupt_archive(self, tmpdir):
        record = self.make_record(tmpdir)
        assert self.ingestor.save_upload(record, io.BytesIO(b"this is not a tarball"))
        assert not self.ingestor.extract(record)
        assert record.status == models.ERROR
        assert record.message_id == "tgzExtractError"
        assert record.message_args[0] == record.tgz_file_path

    def test_missing_upload(self, tmpdir):
        record = self.make_record(tmpdir)
        record.tgz_file_path = os.path.join(record.build_dir, "upload_7.tgz")
        assert not self.ingestor.extract(record)
        assert record.status == models.ERROR
        assert record.message_id == "noTgzFound"
