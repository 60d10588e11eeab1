# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import logging
import os
import shutil
import ssl

import click
from flask.cli import FlaskGroup

from remote_build_service import create_app
from remote_build_service.common.config import init_config


def _create_app():
    return create_app()


@click.group(cls=FlaskGroup, create_app=_create_app, add_default_commands=False)
def cli():
    """ Manage the remote build service. """


def _establish_ssl_context(conf):
    if not conf.ssl_enabled:
        return None
    # First, do some validation of the configuration
    attributes = (
        "ssl_certificate_file",
        "ssl_certificate_key_file",
        "ssl_ca_certificate_file",
    )

    for attribute in attributes:
        value = getattr(conf, attribute, None)
        if not value:
            raise ValueError("%r could not be found" % attribute)
        if not os.path.exists(value):
            raise OSError("%s: %s file not found." % (attribute, value))

    # Then, establish the ssl context and return it
    ssl_ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ssl_ctx.load_cert_chain(conf.ssl_certificate_file, conf.ssl_certificate_key_file)
    ssl_ctx.verify_mode = ssl.CERT_OPTIONAL
    ssl_ctx.load_verify_locations(cafile=conf.ssl_ca_certificate_file)
    return ssl_ctx


def _serve(host, port, debug, ssl_context=None):
    app = create_app(debug=debug)
    conf = app.config["RBS_CONF"]
    scheduler = app.extensions["build_scheduler"]
    try:
        app.run(
            host=host or conf.host,
            port=port or conf.port,
            ssl_context=ssl_context,
            debug=debug,
            threaded=True,
            use_reloader=False,
        )
    finally:
        scheduler.shutdown()


@cli.command(with_appcontext=False)
@click.option("-h", "--host", default=None, help="Address to listen on")
@click.option("-p", "--port", type=int, default=None, help="Port to listen on")
@click.option("-d", "--debug", is_flag=True, default=False)
def run(host, port, debug):
    """ Runs the remote build service over plain HTTP
    """
    logging.info("Starting the remote build service")
    _serve(host, port, debug)


@cli.command(with_appcontext=False)
@click.option("-h", "--host", default=None, help="Address to listen on")
@click.option("-p", "--port", type=int, default=None, help="Port to listen on")
@click.option("-d", "--debug", is_flag=True, default=False)
def runssl(host, port, debug):
    """ Runs the remote build service with the HTTPS settings configured in config.py
    """
    logging.info("Starting the remote build service over HTTPS")
    conf, _ = init_config()
    _serve(host, port, debug, _establish_ssl_context(conf))


@cli.command(with_appcontext=False)
def cleanup():
    """ Removes every build directory left behind by a previous run
    """
    conf, _ = init_config()
    base_build_dir = conf.base_build_dir
    if not os.path.isdir(base_build_dir):
        click.echo("Nothing to clean up in %s" % base_build_dir)
        return
    for name in sorted(os.listdir(base_build_dir)):
        path = os.path.join(base_build_dir, name)
        click.echo("Removing %s" % path)
        if os.path.isdir(path):
            shutil.rmtree(path)
        else:
            os.unlink(path)


if __name__ == "__main__":
    cli()
