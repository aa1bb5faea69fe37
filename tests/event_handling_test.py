# python imports:
import contextlib
import logging
from pathlib import Path
import sys
import trio # pip install trio
from typing import Iterator, List
import unittest

if __name__ == '__main__': # pragma: no cover
	sys.path.append ( str ( Path ( __file__ ).parent.parent.absolute() ) )

# smtp_forward imports:
import base_proto
import event_handling
import transport
from util import BYTES

logger = logging.getLogger ( __name__ )

@contextlib.contextmanager
def quiet_logging ( quiet: bool = True ) -> Iterator[None]:
	try:
		if quiet:
			logging.disable ( logging.CRITICAL )
		yield None
	finally:
		if quiet:
			logging.disable ( logging.NOTSET )


class ScriptedTransport ( transport.AsyncTransport ):
	def __init__ ( self, *reads: bytes ) -> None:
		self.reads = list ( reads )
		self.written: List[bytes] = []
		self.closed = False

	async def read ( self ) -> bytes:
		if not self.reads:
			raise ConnectionResetError ( 'peer vanished' )
		return self.reads.pop ( 0 )

	async def write ( self, data: BYTES ) -> None:
		self.written.append ( bytes ( data ) )

	async def close ( self ) -> None:
		self.closed = True


class EchoProtocol ( base_proto.ServerProtocol ):
	_MAXLINE = 16

	def startup ( self ) -> Iterator[base_proto.Event]:
		yield base_proto.SendDataEvent ( b'hi\n' )

	def _receive_line ( self, line: BYTES ) -> Iterator[base_proto.Event]:
		if bytes ( line ) == b'bye\n':
			raise base_proto.Closed ( 'bye' )
		yield base_proto.SendDataEvent ( bytes ( line ) )


class FinishingServer ( event_handling.AsyncServer ):
	finished = False

	async def on_finished ( self ) -> None:
		self.finished = True


class Tests ( unittest.TestCase ):
	def test_coverage ( self ) -> None:
		with self.assertRaises ( event_handling.Closed ):
			try:
				with event_handling.close_if_oserror():
					raise OSError ( 'foo' )
			except event_handling.Closed as e:
				self.assertEqual ( repr ( e ), '''Closed("OSError('foo')")''' )
				raise

	def test_run ( self ) -> None:
		test = self
		for reads, written in (
			( ( b'one\ntw', b'o\n', b'bye\n' ), [ b'hi\n', b'one\n', b'two\n' ] ), # Closed by the protocol
			( ( b'one\n', ), [ b'hi\n', b'one\n' ] ), # OSError from the transport
			( ( b'x' * 16, ), [ b'hi\n' ] ), # ProtocolError
			( ( b'one\n', b'' ), [ b'hi\n', b'one\n' ] ), # EOF
		):
			with test.subTest ( reads = reads ):
				t = ScriptedTransport ( *reads )
				srv = FinishingServer ( t, EchoProtocol ( 'localhost' ) )
				with quiet_logging():
					trio.run ( srv.run )
				test.assertEqual ( t.written, written )
				test.assertTrue ( t.closed )
				test.assertTrue ( srv.finished )

		# the default hook does nothing
		t = ScriptedTransport ( b'bye\n' )
		trio.run ( event_handling.AsyncServer ( t, EchoProtocol ( 'localhost' ) ).run )
		test.assertTrue ( t.closed )

if __name__ == '__main__':
	logging.basicConfig ( level = logging.DEBUG )
	unittest.main()
