# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" The remote build service's public RESTful API.

All routes live under /remote-build/1 and are thin wrappers around the
BuildScheduler, which raises the errors mapped to HTTP statuses in
remote_build_service.create_app.
"""

import io
import logging

from flask import Response, jsonify, request, send_file, url_for
from flask.views import MethodView

from remote_build_service.web.utils import get_locale, get_offset

log = logging.getLogger(__name__)

api_prefix = "/remote-build/1"


class BuildTaskAPI(MethodView):

    def __init__(self, scheduler):
        self.scheduler = scheduler

    def get(self, id):
        locale = get_locale()
        if id is None:
            # Lists all builds along with the server's metrics
            return jsonify(self.scheduler.list_all(locale)), 200

        record = self.scheduler.get_record(id, locale)
        return jsonify(record.json()), 200

    def post(self):
        locale = get_locale()
        log.info("New build submitted: %s" % request.url)
        record = self.scheduler.submit(request.args, request.stream, locale)
        with self.scheduler.lock:
            data = record.localize(locale).json()

        response = jsonify(data)
        response.status_code = 202
        response.headers["Content-Location"] = url_for(
            "build_tasks", id=record.id, _external=True)
        return response


class BuildLogAPI(MethodView):

    def __init__(self, scheduler):
        self.scheduler = scheduler

    def get(self, id):
        chunks = self.scheduler.open_build_log(id, get_offset(), get_locale())
        return Response(chunks, mimetype="text/plain")


class BuildDownloadAPI(MethodView):

    def __init__(self, scheduler):
        self.scheduler = scheduler

    def get(self, id):
        output = io.BytesIO()
        record = self.scheduler.download_artifact(id, output, get_locale())
        output.seek(0)
        return send_file(
            output,
            mimetype="application/zip",
            as_attachment=True,
            download_name="%s.zip" % (record.app_name or record.id),
        )


def register_api(app, scheduler):
    """ Registers version 1 of the remote build API. """
    task_view = BuildTaskAPI.as_view("build_tasks", scheduler)
    app.add_url_rule(api_prefix + "/build/tasks", defaults={"id": None},
                     view_func=task_view, methods=["GET"])
    app.add_url_rule(api_prefix + "/build/tasks", view_func=task_view,
                     methods=["POST"])
    app.add_url_rule(api_prefix + "/build/tasks/<int:id>", view_func=task_view,
                     methods=["GET"])
    # short form of the status URL
    app.add_url_rule(api_prefix + "/build/<int:id>", view_func=task_view,
                     methods=["GET"])

    log_view = BuildLogAPI.as_view("build_logs", scheduler)
    app.add_url_rule(api_prefix + "/build/tasks/<int:id>/log", view_func=log_view,
                     methods=["GET"])

    download_view = BuildDownloadAPI.as_view("build_downloads", scheduler)
    app.add_url_rule(api_prefix + "/build/<int:id>/download", view_func=download_view,
                     methods=["GET"])
