# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Turns an uploaded project archive into an extracted project directory.

Both steps return True on success. On failure the reason is already stored
on the record (status ERROR plus a message key) and False is returned, so
callers only have to stop the pipeline.
"""

import json
import logging
import os
import shutil
import tarfile
import zlib

from werkzeug.exceptions import HTTPException

from remote_build_service import models
from remote_build_service.common.errors import IngestionError

log = logging.getLogger(__name__)

APP_DIR_NAME = "cordovaApp"
CHANGE_LIST_NAME = "changeList.json"

# Relative to the project root, never extracted.
EXCLUDED_MEMBERS = frozenset([".cordova/config.json"])

# Top level project directories which deleted files are relative to. Every
# other deleted path is relative to www/.
ROOT_RELATIVE_DIRS = frozenset(["merges", "res"])

# Directories created from Windows archives carry no execute bit, so
# everything extracted is made accessible to everyone.
EXTRACTED_MODE = 0o777

COPY_BUFSIZE = 64 * 1024


def _split_path(path):
    """ Split a client path, which may use backslashes, into its segments. """
    return [part for part in path.replace("\\", "/").split("/") if part not in ("", ".")]


def _is_within(directory, path):
    directory = os.path.realpath(directory)
    path = os.path.realpath(path)
    return path == directory or path.startswith(directory + os.sep)


def deleted_file_path(app_dir, deleted_file):
    """
    Map a changeList.json deletedFiles entry to a path inside ``app_dir``.

    Returns None for entries which would resolve outside of the project.
    """
    parts = _split_path(deleted_file)
    if not parts or ".." in parts:
        return None
    if parts[0] in ROOT_RELATIVE_DIRS:
        path = os.path.join(app_dir, *parts)
    else:
        path = os.path.join(app_dir, "www", *parts)
    if not _is_within(app_dir, path):
        return None
    return path


class ArchiveIngestor(object):
    """ Saves and unpacks the project archive of a build record. """

    def __init__(self, buffer_size=COPY_BUFSIZE):
        self.buffer_size = buffer_size

    def ingest(self, record, upload_stream):
        """ save_upload() followed by extract(). """
        return self.save_upload(record, upload_stream) and self.extract(record)

    def save_upload(self, record, upload_stream):
        record.tgz_file_path = os.path.join(record.build_dir, "upload_%s.tgz" % record.id)
        log.debug("Saving upload of build %s to %s" % (record.id, record.tgz_file_path))
        try:
            with open(record.tgz_file_path, "wb") as f:
                shutil.copyfileobj(upload_stream, f, self.buffer_size)
        except (IOError, OSError, HTTPException) as e:
            # HTTPException: werkzeug's ClientDisconnected while reading the body
            log.error("Error saving uploaded archive %s: %s" % (record.tgz_file_path, e))
            record.update_status(models.ERROR, "errorSavingTgz", record.tgz_file_path, str(e))
            return False

        record.update_status(models.UPLOADED)
        log.info("Build %s uploaded to %s" % (record.id, record.tgz_file_path))
        return True

    def extract(self, record):
        record.app_dir = os.path.join(record.build_dir, APP_DIR_NAME)
        try:
            self._check_upload(record)
            self._create_app_dir(record)
            self._unpack(record)
            self._apply_change_list(record)
        except IngestionError as e:
            log.error("Extracting build %s failed: %s %r" % (record.id, e.message_id, e.message_args))
            record.update_status(models.ERROR, e.message_id, *e.message_args)
            return False

        record.update_status(models.EXTRACTED)
        log.info("Build %s extracted to %s" % (record.id, record.app_dir))
        return True

    def _check_upload(self, record):
        if not record.tgz_file_path or not os.path.isfile(record.tgz_file_path):
            raise IngestionError("noTgzFound", record.tgz_file_path)

    def _create_app_dir(self, record):
        try:
            if not os.path.isdir(record.app_dir):
                os.makedirs(record.app_dir)
        except OSError as e:
            raise IngestionError("failedCreateDirectory", record.app_dir, str(e))

    def _unpack(self, record):
        try:
            with tarfile.open(record.tgz_file_path, "r:gz") as tar:
                for member in tar:
                    self._extract_member(tar, member, record.app_dir)
        except (tarfile.TarError, zlib.error, EOFError, IOError, OSError) as e:
            raise IngestionError("tgzExtractError", record.tgz_file_path, str(e))

    def _extract_member(self, tar, member, app_dir):
        # Drop the archive's top level directory.
        parts = _split_path(member.name)[1:]
        if not parts:
            return
        relpath = "/".join(parts)
        if relpath in EXCLUDED_MEMBERS:
            return
        if ".." in parts or os.path.isabs(member.name):
            log.warning("Skipping archive entry outside of the project: %s" % member.name)
            return

        target = os.path.join(app_dir, *parts)
        if member.isdir():
            if not os.path.isdir(target):
                os.makedirs(target)
            os.chmod(target, EXTRACTED_MODE)
        elif member.isfile():
            parent = os.path.dirname(target)
            if not os.path.isdir(parent):
                os.makedirs(parent)
            source = tar.extractfile(member)
            with open(target, "wb") as f:
                shutil.copyfileobj(source, f, self.buffer_size)
            os.chmod(target, EXTRACTED_MODE)
        else:
            log.debug("Skipping archive entry %s of unsupported type" % member.name)

    def _apply_change_list(self, record):
        change_list_file = os.path.join(record.app_dir, CHANGE_LIST_NAME)
        if not os.path.isfile(change_list_file):
            record.change_list = None
            return

        try:
            with open(change_list_file, "r", encoding="utf-8") as f:
                change_list = json.load(f)
        except (IOError, OSError, ValueError) as e:
            raise IngestionError("changeListParseError", change_list_file, str(e))

        if not isinstance(change_list, dict):
            raise IngestionError("changeListParseError", change_list_file,
                                 "expected an object, got %s" % type(change_list).__name__)
        deleted_files = change_list.get("deletedFiles") or []
        if not isinstance(deleted_files, list) or not all(isinstance(p, str) for p in deleted_files):
            raise IngestionError("changeListParseError", change_list_file,
                                 "deletedFiles must be a list of paths")

        record.change_list = change_list
        for deleted_file in deleted_files:
            path = deleted_file_path(record.app_dir, deleted_file)
            if path is None:
                log.warning("Ignoring deleted file outside of the project: %s" % deleted_file)
                continue
            if not os.path.lexists(path):
                continue
            try:
                if os.path.isdir(path) and not os.path.islink(path):
                    shutil.rmtree(path)
                else:
                    os.unlink(path)
            except OSError as e:
                log.warning("Build %s: failed to remove %s: %s" % (record.id, path, e))
                continue
            log.debug("Build %s: removed %s" % (record.id, path))
