from __future__ import annotations

# python imports:
import argparse
import logging
import packaging.version # pip install packaging
import sys
import trio # pip install trio
from typing import Optional as Opt, Sequence as Seq

# smtp_forward imports:
from config import Config, ConfigError, LOG_LEVELS
from sink import HttpSink, LogSink, Sink
import smtp_trio

__version__ = packaging.version.parse ( '0.1.0' )

logger = logging.getLogger ( __name__ )


def parse_args ( argv: Opt[Seq[str]] = None, base: Opt[Config] = None ) -> Config:
	'''
	command line options override environment variables, which override
	the built-in defaults
	'''
	if base is None:
		base = Config.from_env()
	parser = argparse.ArgumentParser (
		prog = 'smtp-forward',
		description = 'receive mail over SMTP and forward it to an HTTP endpoint as JSON',
	)
	parser.add_argument ( '--version', action = 'version', version = f'%(prog)s {__version__}' )
	parser.add_argument ( '--host', help = f'address to listen on (default {base.host})' )
	parser.add_argument ( '--port', type = int, help = f'port to listen on (default {base.port})' )
	parser.add_argument ( '--domain', help = f'domain announced in EHLO (default {base.domain})' )
	parser.add_argument ( '--service-name', help = f'name in the 220 banner (default {base.service_name})' )
	parser.add_argument ( '--sink-url', help = 'url messages are POSTed to (default: log only)' )
	parser.add_argument ( '--max-message-size', type = int, help = f'largest accepted DATA in characters (default {base.max_message_size})' )
	parser.add_argument ( '--idle-timeout', type = float, help = f'seconds a client may stay silent (default {base.idle_timeout})' )
	parser.add_argument ( '--log-level', type = str.upper, choices = LOG_LEVELS, help = f'(default {base.log_level})' )
	args = parser.parse_args ( argv )
	return base.replace (
		host = args.host,
		port = args.port,
		domain = args.domain,
		service_name = args.service_name,
		sink_url = args.sink_url,
		max_message_size = args.max_message_size,
		idle_timeout = args.idle_timeout,
		log_level = args.log_level,
	)


def make_sink ( config: Config ) -> Sink:
	if config.sink_url:
		return HttpSink ( config.sink_url, config.sink_token, config.sink_timeout )
	return LogSink()


def main ( argv: Opt[Seq[str]] = None ) -> int:
	try:
		config = parse_args ( argv )
	except ConfigError as e:
		print ( f'smtp-forward: error: {e}', file = sys.stderr )
		return 2
	logging.basicConfig (
		stream = sys.stdout,
		level = config.log_level,
		format = (
			'%(asctime)s '
			'[%(name)s %(levelname)s] '
			'%(message)s'
		),
	)
	log = logger.getChild ( 'main' )
	sink = make_sink ( config )
	log.info ( f'smtp-forward {__version__} for {config.domain} started with {sink!r}' )
	log.debug ( f'{config=}' )
	try:
		trio.run ( smtp_trio.serve, config, sink )
	except KeyboardInterrupt:
		log.info ( 'shutting down' )
	return 0


if __name__ == '__main__':
	sys.exit ( main() )
