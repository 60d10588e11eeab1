# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Disk retention of finished builds. """

import logging
import shutil
import threading

from remote_build_service import models

log = logging.getLogger(__name__)


class RetentionPolicy(object):
    """
    Keeps the number of builds on disk at ``conf.max_builds_to_keep``.

    ``builds`` passed to the methods below is the scheduler's table, a dict
    of build id -> BuildRecord, and is modified in place. The caller holds
    the lock guarding it.
    """

    def __init__(self, conf):
        self.max_builds_to_keep = conf.max_builds_to_keep

    def select(self, builds, protected=()):
        """ Returns the records purge() would delete, oldest first. """
        excess = len(builds) - self.max_builds_to_keep
        if excess <= 0:
            return []

        protected_ids = set(getattr(r, "id", r) for r in protected)
        eligible = [
            record for record in builds.values()
            if record.status in models.DISPOSABLE_STATES and record.id not in protected_ids
        ]
        eligible.sort(key=lambda r: (r.submission_time, r.id))
        return eligible[:excess]

    def purge(self, builds, protected=()):
        """
        Delete the oldest finished builds beyond the configured maximum.

        Records in the compile slot or the wait queue belong in ``protected``
        (records or ids) and are never deleted. Returns the deleted records.
        """
        victims = self.select(builds, protected)
        if not victims:
            return []

        log.info("Purging %d old build(s): %s" % (
            len(victims), ", ".join(str(r.id) for r in victims)))
        for record in victims:
            del builds[record.id]
        self._delete_dirs_async([r.build_dir for r in victims])
        return victims

    def delete_all_sync(self, builds):
        """ Remove the directory of every record in ``builds`` and empty it. """
        for record in list(builds.values()):
            self._delete_dir(record.build_dir)
        builds.clear()

    def _delete_dirs_async(self, build_dirs):
        thread = threading.Thread(
            target=self._delete_dirs, args=(build_dirs,), name="retention")
        thread.daemon = True
        thread.start()
        return thread

    def _delete_dirs(self, build_dirs):
        for build_dir in build_dirs:
            self._delete_dir(build_dir)

    def _delete_dir(self, build_dir):
        log.debug("Deleting build directory %s" % build_dir)
        try:
            shutil.rmtree(build_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            log.error("Failed to delete build directory %s: %s" % (build_dir, e))
