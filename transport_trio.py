from __future__ import annotations

# python imports:
import contextlib
import logging
import trio # pip install trio
from typing import Iterator, Optional as Opt

# smtp_forward imports:
from smtp_proto import MAX_CHUNK
from transport import AsyncTransport
from util import BYTES

logger = logging.getLogger ( __name__ )


@contextlib.contextmanager
def _broken_is_oserror() -> Iterator[None]:
	try:
		yield
	except ( trio.BrokenResourceError, trio.ClosedResourceError ) as e:
		raise ConnectionError ( repr ( e ) ) from e


class TrioTransport ( AsyncTransport ):
	read_timeout: float = 300.0 # idle deadline, the client has to say *something* within this time
	write_timeout: float = 30.0
	close_timeout: float = 0.05
	stream: trio.abc.Stream

	def __init__ ( self,
		stream: trio.abc.Stream,
		read_timeout: Opt[float] = None,
		write_timeout: Opt[float] = None,
	) -> None:
		self.stream = stream
		if read_timeout is not None:
			self.read_timeout = read_timeout
		if write_timeout is not None:
			self.write_timeout = write_timeout

	@property
	def peer ( self ) -> str:
		sock = getattr ( self.stream, 'socket', None )
		if sock is None:
			return repr ( self.stream )
		try:
			return str ( sock.getpeername() )
		except OSError:
			return '(disconnected)'

	async def read ( self ) -> bytes:
		#log = logger.getChild ( 'TrioTransport.read' )
		with trio.move_on_after ( self.read_timeout ), _broken_is_oserror():
			return await self.stream.receive_some ( MAX_CHUNK )
		raise TimeoutError ( f'{type(self).__module__}.{type(self).__name__} timeout waiting to read data' )

	async def write ( self, data: BYTES ) -> None:
		#log = logger.getChild ( 'TrioTransport.write' )
		with trio.move_on_after ( self.write_timeout ), _broken_is_oserror():
			await self.stream.send_all ( data )
			return
		raise TimeoutError ( f'{type(self).__module__}.{type(self).__name__} timeout waiting to write {bytes(data)=}' )

	async def close ( self ) -> None:
		#log = logger.getChild ( 'TrioTransport.close' )
		with trio.move_on_after ( self.close_timeout ):
			await self.stream.aclose()
