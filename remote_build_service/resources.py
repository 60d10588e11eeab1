# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Message catalog for strings that reach remote build clients.

Build records store a message key and its arguments; the text is only
rendered when a client reads the record, in the client's language.
"""

import logging

log = logging.getLogger(__name__)

DEFAULT_LOCALE = "en"

MESSAGES = {
    "en": {
        # Status fallbacks, "Build-<status>"
        "Build-uploading": "Build is uploading",
        "Build-uploaded": "Build was uploaded",
        "Build-extracted": "Build was extracted and is waiting to be built",
        "Build-building": "Build is in progress",
        "Build-complete": "Build completed successfully",
        "Build-downloaded": "Build was downloaded",
        "Build-error": "Build failed",
        "Build-invalid": "Build is invalid",
        "Build-emulated": "Build was launched in an emulator",
        "Build-running": "Build is running on a device",
        "Build-installed": "Build was installed on a device",
        "Build-debugging": "Build is being debugged",
        "Build-deleted": "Build was deleted",

        # Request validation
        "InvalidBuildRequest": "Invalid build request",
        "BuildRequestMissingCordovaVersion": "Build request is missing the Cordova version (vcordova)",
        "BuildRequestInvalidCordovaVersion": "Cordova version {0} is not a valid version",
        "BuildRequestUnsupportedCordovaVersion":
            "Cordova version {0} is newer than the version installed on this server ({1})",
        "BuildRequestUnsupportedCommand": "Unsupported build command: {0}",
        "BuildRequestUnsupportedConfiguration": "Unsupported build configuration: {0}",
        "BuildRequestInvalidBuildNumber": "Build number must be a positive integer: {0}",
        "BuildRequestBuildNumberInUse": "Build number {0} is already in use by an active build",
        "UnsupportedPlatform": "Platform {0} is not supported by this server",
        "BuildQueueFull": "Build queue is full, {0} builds are already waiting",

        # Ingestion
        "errorSavingTgz": "Error saving uploaded archive {0}: {1}",
        "noTgzFound": "Uploaded archive {0} was not found",
        "failedCreateDirectory": "Failed to create directory {0}: {1}",
        "tgzExtractError": "Error extracting uploaded archive {0}: {1}",
        "changeListParseError": "Error reading change list {0}: {1}",

        # Project validation
        "InvalidCordovaAppMissingConfigXml": "The uploaded project has no config.xml",
        "InvalidCordovaAppBadConfigXml": "The uploaded project's config.xml could not be read: {0}",
        "InvalidCordovaAppUnsupportedAppName":
            "The app name {0} contains unsupported characters. Remove any of: {1}",
        "InvalidCordovaAppMissingWww": "The uploaded project has no www directory",
        "buildDirectoryNotFound": "Build directory {0} was not found",

        # Worker
        "BuildFailedUnexpectedly": "The build process exited unexpectedly",
        "BuildFailedWithError": "Build failed with error: {0}",
        "BuildInvokedTwice": "The build process was asked to build twice",
        "BuildInvalidResultStatus": "The build process reported an unknown status: {0}",
        "LoggedProcessTerminatedWithCode": "Process terminated with exit code {0}",
        "AcquiringCordova": "Acquiring Cordova",
        "UpdatingPlatform": "Updating platform {0}",
        "CopyingNativeOverrides": "Copying native overrides",
        "CordovaCompiling": "Compiling with Cordova",
        "PackagingNativeApp": "Packaging native app",
        "DoneBuilding": "Done building {0}",

        # Download
        "BuildNotFound": "Build {0} was not found",
        "BuildNotCompleted": "Build is not complete, current status: {0}",
        "downloadInvalid": "Build output {0} or {1} is missing",
    },
}


def _catalog(locale):
    if not locale:
        return MESSAGES[DEFAULT_LOCALE]
    locale = locale.strip().lower().replace("_", "-")
    if locale in MESSAGES:
        return MESSAGES[locale]
    # "en-us" -> "en"
    return MESSAGES.get(locale.split("-")[0], MESSAGES[DEFAULT_LOCALE])


def format_message(key, args=None, locale=None):
    """ Render message ``key`` with ``args`` in ``locale``.

    Unknown keys are returned as they are so that a worker reporting a key
    this server does not know still produces something readable.
    """
    template = _catalog(locale).get(key)
    if template is None:
        template = MESSAGES[DEFAULT_LOCALE].get(key)
    if template is None:
        log.debug("No message for key %r" % key)
        return key

    args = list(args or [])
    try:
        return template.format(*args)
    except IndexError:
        log.warning("Message %r expects more arguments than %r" % (key, args))
        return template


def locale_from_accept_language(header):
    """ Returns the first language tag from an Accept-Language header. """
    if not header:
        return None
    first = header.split(",")[0].split(";")[0].strip()
    return first or None
