# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" iOS platform backend. """

import logging
import os
import plistlib
import shutil
import zipfile

from kobo.shortcuts import run

from remote_build_service.builder.base import GenericPlatform
from remote_build_service.common.errors import NotFoundError
from remote_build_service.resources import format_message

log = logging.getLogger(__name__)

# target-device preference -> TARGETED_DEVICE_FAMILY
TARGET_DEVICE_FAMILIES = {
    "handset": "1",
    "tablet": "2",
}
UNIVERSAL_DEVICE_FAMILY = "1,2"


def device_output_dir(app_dir):
    return os.path.join(app_dir, "platforms", "ios", "build", "device")


class IOSPlatform(GenericPlatform):

    backend = "ios"

    def package_artifact(self, record, output):
        output_dir = device_output_dir(record.app_dir)
        plist_name = "%s.plist" % record.app_name
        ipa_name = "%s.ipa" % record.app_name
        plist_path = os.path.join(output_dir, plist_name)
        ipa_path = os.path.join(output_dir, ipa_name)
        if not os.path.isfile(plist_path) or not os.path.isfile(ipa_path):
            log.info("Build %s has no output to download: %s, %s" % (
                record.id, plist_path, ipa_path))
            raise NotFoundError(format_message("downloadInvalid", [plist_path, ipa_path]))

        with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as archive:
            archive.write(plist_path, plist_name)
            archive.write(ipa_path, ipa_name)

    # Worker side

    def after_prepare(self):
        self.apply_preferences_to_build_config(self.manifest.preferences("ios"))

    def before_compile(self):
        self.update_bundle_version()

    def after_compile(self):
        self.rename_app()

    def package(self):
        app_dir_name = "%s.app" % self.manifest.id()
        ipa_path = os.path.join(device_output_dir(self.record.app_dir), "%s.ipa" % self.record.app_name)
        run(["xcrun", "-v", "-sdk", "iphoneos", "PackageApplication",
             os.path.join("platforms", "ios", "build", "device", app_dir_name),
             "-o", ipa_path],
            workdir=self.record.app_dir, show_cmd=True, stdout=True)

        plist_path = os.path.join(device_output_dir(self.record.app_dir), "%s.plist" % self.record.app_name)
        self.write_enterprise_plist(plist_path, "%s.ipa" % self.record.app_name)

    def apply_preferences_to_build_config(self, preferences):
        """ Pass device preferences of config.xml on to the Xcode build. """
        family = TARGET_DEVICE_FAMILIES.get(preferences.get("target-device"), UNIVERSAL_DEVICE_FAMILY)
        lines = ["TARGETED_DEVICE_FAMILY = %s" % family]
        deployment_target = preferences.get("deployment-target")
        if deployment_target:
            lines.append("IPHONEOS_DEPLOYMENT_TARGET = %s" % deployment_target)
        # keep the file newline terminated for later appends
        lines.append("")

        config_dir = self.app_path("platforms", "ios", "cordova")
        if not os.path.isdir(config_dir):
            raise RuntimeError("Xcode build configuration directory %s not found" % config_dir)
        with open(os.path.join(config_dir, "build.xcconfig"), "a") as f:
            for line in lines:
                f.write("\n" + line)

    def update_bundle_version(self):
        """ Append the build number to CFBundleVersion. """
        app_name = self.record.app_name
        plist_path = self.app_path("platforms", "ios", app_name, "%s-Info.plist" % app_name)
        if not os.path.isfile(plist_path):
            log.warning("%s not found, bundle version not updated" % plist_path)
            return

        with open(plist_path, "rb") as f:
            info = plistlib.load(f)
        version = info.get("CFBundleVersion")
        info["CFBundleVersion"] = "%s.%s" % (version, self.record.id) if version else str(self.record.id)
        with open(plist_path, "wb") as f:
            plistlib.dump(info, f)

    def rename_app(self):
        # The .app is named after the package id so that unicode app names
        # don't end up in paths.
        kind = "device" if self.is_device_build() else "emulator"
        build_dir = self.app_path("platforms", "ios", "build", kind)
        old_name = os.path.join(build_dir, "%s.app" % self.record.app_name)
        new_name = os.path.join(build_dir, "%s.app" % self.manifest.id())
        if old_name == new_name or not os.path.exists(old_name):
            return
        if os.path.exists(new_name):
            shutil.rmtree(new_name)
        os.rename(old_name, new_name)

    def write_enterprise_plist(self, path, ipa_name):
        """ Manifest used for over the air installation of the ipa. """
        contents = {
            "items": [{
                "assets": [{"kind": "software-package", "url": ipa_name}],
                "metadata": {
                    "bundle-identifier": self.manifest.id() or "",
                    "bundle-version": self.manifest.version() or "",
                    "kind": "software",
                    "title": self.manifest.name() or "",
                },
            }],
        }
        with open(path, "wb") as f:
            plistlib.dump(contents, f)
