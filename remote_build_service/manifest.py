# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Read-only access to a Cordova project's config.xml. """

import os
import xml.etree.ElementTree as ET

WIDGET_NS = "http://www.w3.org/ns/widgets"


class ProjectManifest(object):
    """
    Parsed config.xml of an uploaded project.

    Raises xml.etree.ElementTree.ParseError when the file is not well formed
    and IOError/OSError when it can't be read.
    """

    def __init__(self, path):
        self.path = path
        self._root = ET.parse(path).getroot()

    @classmethod
    def from_app_dir(cls, app_dir):
        return cls(os.path.join(app_dir, "config.xml"))

    def _find(self, tag):
        # Projects generated by old tools leave out the widget namespace
        node = self._root.find("{%s}%s" % (WIDGET_NS, tag))
        if node is None:
            node = self._root.find(tag)
        return node

    def _findall(self, tag):
        return (self._root.findall("{%s}%s" % (WIDGET_NS, tag)) +
                self._root.findall(tag))

    def id(self):
        return self._root.get("id")

    def version(self):
        return self._root.get("version")

    def name(self):
        node = self._find("name")
        if node is None or node.text is None:
            return None
        return node.text.strip()

    def preferences(self, platform=None):
        """
        Returns the <preference> values as a dict. Preferences nested in
        <platform name="..."> override the global ones for that platform.
        """
        prefs = {}
        for node in self._findall("preference"):
            prefs[node.get("name")] = node.get("value")

        if platform:
            for platform_node in self._findall("platform"):
                if platform_node.get("name") != platform:
                    continue
                for node in (platform_node.findall("{%s}preference" % WIDGET_NS) +
                             platform_node.findall("preference")):
                    prefs[node.get("name")] = node.get("value")
        return prefs
