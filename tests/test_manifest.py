# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import xml.etree.ElementTree as ET

import pytest

from remote_build_service.manifest import ProjectManifest
from tests import CONFIG_XML


class TestProjectManifest:

    def test_widget_namespace(self, tmpdir):
        tmpdir.join("config.xml").write(CONFIG_XML.format(name="HelloCordova"))
        manifest = ProjectManifest.from_app_dir(str(tmpdir))
        assert manifest.id() == "io.example.hello"
        assert manifest.version() == "1.2.3"
        assert manifest.name() == "HelloCordova"
        assert manifest.preferences() == {"target-device": "handset"}
        assert manifest.preferences("ios") == {
            "target-device": "handset", "deployment-target": "8.0"}

    def test_without_namespace(self, tmpdir):
        tmpdir.join("config.xml").write(
            '<widget id="a.b"><name> Spaced </name>'
            '<preference name="foo" value="bar"/></widget>')
        manifest = ProjectManifest(str(tmpdir.join("config.xml")))
        assert manifest.name() == "Spaced"
        assert manifest.preferences("android") == {"foo": "bar"}

    def test_missing_name(self, tmpdir):
        tmpdir.join("config.xml").write('<widget id="a.b"></widget>')
        assert ProjectManifest.from_app_dir(str(tmpdir)).name() is None

    def test_malformed(self, tmpdir):
        tmpdir.join("config.xml").write("<widget><name>x</widget>")
        with pytest.raises(ET.ParseError):
            ProjectManifest.from_app_dir(str(tmpdir))
