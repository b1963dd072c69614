"""
Entry point for SignalRelay application.
This module provides a command-line interface to start the relay or probe one.
"""

import argparse

from SignalRelay.config import config
from SignalRelay.start import probe, server


def parse():
    # Initialize argument parser for command line interface
    parser = argparse.ArgumentParser(prog='SignalRelay', description='SignalRelay starter')
    subparsers = parser.add_subparsers(dest='command', required=True, help='Available commands')

    # Setup server command line arguments
    server_parser = subparsers.add_parser('server', help='Startup relay SERVER')
    server_parser.add_argument('--host', default=config.DEFAULT_HOST,
                               help=f'listening address (default: {config.DEFAULT_HOST})')
    server_parser.add_argument('--port', type=int, default=config.DEFAULT_PORT,
                               help=f'listening port (default: $PORT or {config.DEFAULT_PORT})')
    server_parser.add_argument('--key', default=config.KEY_FILE, help='TLS private key file (PEM)')
    server_parser.add_argument('--cert', default=config.CERT_FILE, help='TLS certificate file (PEM)')
    server_parser.add_argument('--allow-origin', action='append', dest='origins', metavar='ORIGIN',
                               help='accept only this origin; repeat for several (default: any origin)')
    server_parser.add_argument('--env', choices=['development', 'production', 'testing'],
                               help='logging preset (default: $SIGNALRELAY_ENV or production)')

    # Setup probe command line arguments
    probe_parser = subparsers.add_parser('probe', help='Claim a username on a running relay and print the roster')
    probe_parser.add_argument('name', help='Username to claim')
    probe_parser.add_argument('--host', default='localhost', help='relay address (default: localhost)')
    probe_parser.add_argument('--port', type=int, default=config.DEFAULT_PORT,
                              help=f'relay port (default: {config.DEFAULT_PORT})')
    probe_parser.add_argument('--secure', action='store_true', help='connect with wss://')

    args = parser.parse_args()

    return args


def main():
    args = parse()

    if args.command == 'server':
        server.server(
            host=args.host,
            port=args.port,
            key_file=args.key,
            cert_file=args.cert,
            allowed_origins=args.origins,
            env=args.env,
        )
    elif args.command == 'probe':
        probe.probe(args.name, host=args.host, port=args.port, secure=args.secure)
    else:
        raise Exception('Unknown command')


if __name__ == '__main__':
    main()
