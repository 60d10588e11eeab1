# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import pytest

from tests import make_conf


@pytest.fixture()
def conf(tmpdir):
    return make_conf(tmpdir.join("server"))
