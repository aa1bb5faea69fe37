# python imports:
import contextlib
import io
import logging
import os
from pathlib import Path
import sys
from typing import Iterator
import unittest
from unittest import mock
from pydantic import ValidationError # pip install pydantic

if __name__ == '__main__': # pragma: no cover
	sys.path.append ( str ( Path ( __file__ ).parent.parent.absolute() ) )

# smtp_forward imports:
from config import Config, ConfigError
from sink import HttpSink, LogSink
import smtp_forward
from smtp_proto import DEFAULT_MAX_BODY_SIZE

logger = logging.getLogger ( __name__ )

@contextlib.contextmanager
def quiet_stderr() -> Iterator[io.StringIO]:
	stderr = io.StringIO()
	with contextlib.redirect_stderr ( stderr ):
		yield stderr


class Tests ( unittest.TestCase ):
	def test_defaults ( self ) -> None:
		test = self
		config = Config.from_env ( {} )
		test.assertEqual ( config.host, '0.0.0.0' )
		test.assertEqual ( config.port, 25 )
		test.assertEqual ( config.domain, 'localhost' )
		test.assertEqual ( config.service_name, 'smtp-forward' )
		test.assertIsNone ( config.sink_url )
		test.assertEqual ( config.sink_token, '' )
		test.assertEqual ( config.max_message_size, DEFAULT_MAX_BODY_SIZE )
		test.assertEqual ( config.idle_timeout, 300.0 )
		test.assertEqual ( config.log_level, 'INFO' )

	def test_env ( self ) -> None:
		test = self
		config = Config.from_env ( {
			'HOST': '127.0.0.1',
			'PORT': ' 2525 ',
			'DOMAIN': 'milliways.local',
			'SERVICE_NAME': 'edgemail',
			'SINK_URL': 'https://sink.example/api/email',
			'EMAIL_TOKEN': 'sekrit',
			'SINK_TIMEOUT': '2.5',
			'MAX_MESSAGE_SIZE': '1024',
			'IDLE_TIMEOUT': '60',
			'LOG_LEVEL': 'debug',
			'UNRELATED': 'ignored',
			'DOMAIN_OVERRIDE': 'ignored',
		} )
		test.assertEqual ( config.host, '127.0.0.1' )
		test.assertEqual ( config.port, 2525 )
		test.assertEqual ( config.domain, 'milliways.local' )
		test.assertEqual ( config.service_name, 'edgemail' )
		test.assertEqual ( config.sink_url, 'https://sink.example/api/email' )
		test.assertEqual ( config.sink_token, 'sekrit' )
		test.assertEqual ( config.sink_timeout, 2.5 )
		test.assertEqual ( config.max_message_size, 1024 )
		test.assertEqual ( config.idle_timeout, 60.0 )
		test.assertEqual ( config.log_level, 'DEBUG' )
		test.assertNotIn ( 'sekrit', repr ( config ) )
		test.assertIn ( "domain='milliways.local'", repr ( config ) )

		# blank means unset
		test.assertEqual ( Config.from_env ( { 'PORT': '  ', 'SINK_URL': '' } ).port, 25 )

	def test_os_environ ( self ) -> None:
		test = self
		with mock.patch.dict ( os.environ, { 'PORT': '2525', 'DOMAIN': 'milliways.local', 'SINK_URL': '', 'port': '1' }, clear = True ):
			config = Config.from_env()
		test.assertEqual ( config.port, 2525 )
		test.assertEqual ( config.domain, 'milliways.local' )
		test.assertIsNone ( config.sink_url )

		with mock.patch.dict ( os.environ, { 'PORT': 'smtp' }, clear = True ):
			with test.assertRaises ( ConfigError ):
				Config.from_env()

	def test_invalid ( self ) -> None:
		test = self
		for environ in (
			{ 'PORT': 'smtp' },
			{ 'PORT': '65536' },
			{ 'PORT': '-1' },
			{ 'DOMAIN': 'two words' },
			{ 'MAX_MESSAGE_SIZE': '0' },
			{ 'IDLE_TIMEOUT': 'forever' },
			{ 'IDLE_TIMEOUT': '-5' },
			{ 'SINK_TIMEOUT': '0' },
			{ 'LOG_LEVEL': 'chatty' },
		):
			with test.subTest ( environ = environ ):
				with test.assertRaises ( ConfigError ):
					Config.from_env ( environ )
		with test.assertRaises ( ValidationError ):
			Config ( service_name = 'edge\r\nmail' )
		with test.assertRaises ( ConfigError ):
			Config.from_env ( { 'SERVICE_NAME': 'edge\r\nmail' } )

	def test_replace ( self ) -> None:
		test = self
		base = Config.from_env ( { 'DOMAIN': 'milliways.local', 'EMAIL_TOKEN': 'sekrit' } )
		config = base.replace ( port = 2525, domain = None )
		test.assertEqual ( config.port, 2525 )
		test.assertEqual ( config.domain, 'milliways.local' )
		test.assertEqual ( config.sink_token, 'sekrit' )
		test.assertEqual ( base.port, 25 )
		with test.assertRaises ( ConfigError ):
			base.replace ( port = 99999 )

	def test_parse_args ( self ) -> None:
		test = self
		base = Config.from_env ( { 'PORT': '2525', 'DOMAIN': 'env.example', 'EMAIL_TOKEN': 'sekrit' } )
		config = smtp_forward.parse_args ( [], base )
		test.assertEqual ( config.port, 2525 )
		test.assertEqual ( config.domain, 'env.example' )

		config = smtp_forward.parse_args ( [
			'--port', '2626',
			'--domain', 'cli.example',
			'--service-name', 'edgemail',
			'--sink-url', 'https://sink.example/api/email',
			'--max-message-size', '4096',
			'--idle-timeout', '30',
			'--log-level', 'warning',
		], base )
		test.assertEqual ( config.port, 2626 )
		test.assertEqual ( config.domain, 'cli.example' )
		test.assertEqual ( config.service_name, 'edgemail' )
		test.assertEqual ( config.sink_url, 'https://sink.example/api/email' )
		test.assertEqual ( config.sink_token, 'sekrit' )
		test.assertEqual ( config.max_message_size, 4096 )
		test.assertEqual ( config.idle_timeout, 30.0 )
		test.assertEqual ( config.log_level, 'WARNING' )

		with quiet_stderr():
			with test.assertRaises ( SystemExit ):
				smtp_forward.parse_args ( [ '--port', 'smtp' ], base )
			with test.assertRaises ( ConfigError ):
				smtp_forward.parse_args ( [ '--port', '70000' ], base )

	def test_main_config_error ( self ) -> None:
		test = self
		with quiet_stderr() as stderr, mock.patch.dict ( os.environ, {}, clear = True ):
			test.assertEqual ( smtp_forward.main ( [ '--max-message-size', '-1' ] ), 2 )
		test.assertIn ( 'max_message_size', stderr.getvalue().lower() )

	def test_make_sink ( self ) -> None:
		test = self
		test.assertIsInstance ( smtp_forward.make_sink ( Config.from_env ( {} ) ), LogSink )
		sink = smtp_forward.make_sink ( Config.from_env ( {
			'SINK_URL': 'https://sink.example/api/email',
			'EMAIL_TOKEN': 'sekrit',
			'SINK_TIMEOUT': '5',
		} ) )
		assert isinstance ( sink, HttpSink )
		test.assertEqual ( sink.url, 'https://sink.example/api/email' )
		test.assertEqual ( sink.token, 'sekrit' )
		test.assertEqual ( sink.timeout, 5.0 )

if __name__ == '__main__':
	logging.basicConfig ( level = logging.DEBUG )
	unittest.main()
