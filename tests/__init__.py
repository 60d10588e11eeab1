# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import io
import os
import sys
import tarfile
import textwrap
import time

from remote_build_service.common.config import Config

base_dir = os.path.dirname(__file__)

CONFIG_XML = """<?xml version='1.0' encoding='utf-8'?>
<widget id="io.example.hello" version="1.2.3" xmlns="http://www.w3.org/ns/widgets">
    <name>{name}</name>
    <description>A sample Apache Cordova application</description>
    <content src="index.html" />
    <preference name="target-device" value="handset" />
    <platform name="ios">
        <preference name="deployment-target" value="8.0" />
    </platform>
</widget>
"""


def make_conf(server_dir, **overrides):
    """ A Config for tests, keeping every build below ``server_dir``. """
    conf = Config()
    conf.set_item("server_dir", str(server_dir))
    conf.set_item("log_level", "debug")
    conf.set_item("max_builds_in_queue", 10)
    conf.set_item("max_builds_to_keep", 20)
    for key, value in overrides.items():
        conf.set_item(key, value)
    return conf


def project_files(name="HelloCordova", config_xml=True, www=True, extra=None):
    """ Files of a minimal Cordova project, relative to its root. """
    files = {}
    if config_xml:
        files["config.xml"] = CONFIG_XML.format(name=name)
    if www:
        files["www/index.html"] = "<html><body>hello</body></html>"
        files["www/js/index.js"] = "console.log('hello');"
    files.update(extra or {})
    return files


def write_files(directory, files):
    """ Write ``files`` (path -> content) below ``directory``. """
    for path, content in files.items():
        full_path = os.path.join(str(directory), *path.split("/"))
        if not os.path.isdir(os.path.dirname(full_path)):
            os.makedirs(os.path.dirname(full_path))
        with open(full_path, "w") as f:
            f.write(content)
    return str(directory)


def make_tgz(files, top="HelloCordova", directories=()):
    """
    Returns the bytes of a gzipped tarball holding ``files`` (path ->
    content) below the ``top`` directory, like the clients upload them.
    """
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for dirname in directories:
            info = tarfile.TarInfo("%s/%s" % (top, dirname))
            info.type = tarfile.DIRTYPE
            info.mode = 0o700
            tar.addfile(info)
        for path, content in sorted(files.items()):
            if isinstance(content, str):
                content = content.encode("utf-8")
            info = tarfile.TarInfo("%s/%s" % (top, path))
            info.size = len(content)
            info.mode = 0o600
            tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


def write_worker_script(directory, body, name="worker.py"):
    """
    Write a fake compile worker. ``body`` runs with ``request`` (the decoded
    request), ``record`` (its record dict) and ``send(dict)`` writing to
    the result pipe already defined.
    """
    path = os.path.join(str(directory), name)
    header = textwrap.dedent("""\
        import json
        import os
        import sys
        import time

        fd = int(sys.argv[sys.argv.index("--result-fd") + 1])
        results = os.fdopen(fd, "w")
        request = json.loads(sys.stdin.readline())
        record = request["record"]


        def send(message):
            results.write(json.dumps(message) + "\\n")
            results.flush()


        """)
    with open(path, "w") as f:
        f.write(header + textwrap.dedent(body))
    return [sys.executable, path]


def wait_for(predicate, timeout=30, interval=0.05):
    """ Poll ``predicate`` until it's true, fail after ``timeout`` seconds. """
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return
        time.sleep(interval)
    raise AssertionError("Timed out waiting for %r" % predicate)
