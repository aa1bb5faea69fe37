from __future__ import annotations

# python imports:
from abc import ABCMeta, abstractmethod
import logging
import re
from typing import Iterator, Sequence as Seq

# smtp_forward imports:
from util import bytes_types, BYTES

logger = logging.getLogger ( __name__ )

_r_eol = re.compile ( r'[\r\n]' )


class Event:
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}()'


class Closed ( Exception ):
	def __init__ ( self, reason: str = '' ) -> None:
		super().__init__ ( reason or '(none given)' )


class ProtocolError ( Exception ):
	pass


class DecodeError ( ProtocolError ):
	pass


class SendDataEvent ( Event ):

	def __init__ ( self, *chunks: bytes ) -> None:
		self.chunks: Seq[bytes] = chunks

	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}(chunks={self.chunks!r})'


class Protocol ( metaclass = ABCMeta ):
	'''
	sans-io line framing

	feed raw bytes to receive(), get events back. A line is everything up to
	and including b'\\n'; partial lines are kept until the rest arrives.
	An empty chunk means the peer went away.
	'''
	_buf: bytes = b''
	_MAXLINE: int

	def receive ( self, data: bytes ) -> Iterator[Event]:
		assert isinstance ( data, bytes_types ), f'invalid {data=}'
		if not data: # EOF indicator
			yield from self._receive_eof()
			return
		self._buf += data
		start = 0
		end = 0
		try:
			while ( end := ( self._buf.find ( b'\n', start ) + 1 ) ):
				line = memoryview ( self._buf )[start:end]
				start = end
				yield from self._receive_line ( line )
		finally:
			if start:
				self._buf = self._buf[start:]
		if len ( self._buf ) >= self._MAXLINE:
			raise ProtocolError ( 'maximum line length exceeded' )

	def _receive_eof ( self ) -> Iterator[Event]:
		if self._buf:
			buf, self._buf = self._buf, b''
			yield from self._receive_line ( buf )
		raise Closed ( 'EOF' )

	@abstractmethod
	def _receive_line ( self, line: BYTES ) -> Iterator[Event]:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}._receive_line()' )


class ServerProtocol ( Protocol ):

	def __init__ ( self, hostname: str ) -> None:
		assert isinstance ( hostname, str ) and not _r_eol.search ( hostname ), f'invalid {hostname=}'
		self.hostname = hostname

	def startup ( self ) -> Iterator[Event]:
		# override this if server protocol needs to say "hi" first
		yield from ()
