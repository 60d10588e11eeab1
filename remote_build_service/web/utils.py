# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from flask import request

from remote_build_service.resources import locale_from_accept_language


def get_locale():
    """ The client's language, from the first Accept-Language tag. """
    return locale_from_accept_language(request.headers.get("Accept-Language"))


def get_offset():
    """
    The ``offset`` query parameter as a non-negative int, 0 when it's missing
    or not a number.
    """
    offset = request.args.get("offset", 0, type=int)
    return max(offset or 0, 0)
