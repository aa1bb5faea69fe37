from __future__ import annotations

# python imports:
import contextlib
import logging
from typing import Iterator

# smtp_forward imports:
from base_proto import Closed, Event, ProtocolError, SendDataEvent, ServerProtocol
from transport import AsyncTransport
from util import b2s

logger = logging.getLogger ( __name__ )


class AsyncEventHandler:
	transport: AsyncTransport

	async def on_SendDataEvent ( self, event: SendDataEvent ) -> None:
		log = logger.getChild ( 'AsyncEventHandler.on_SendDataEvent' )
		for chunk in event.chunks:
			log.debug ( f'S>{b2s(chunk,errors="replace").rstrip()}' )
			await self.transport.write ( chunk )

	async def _on_event ( self, event: Event ) -> None:
		func = getattr ( self, f'on_{type(event).__name__}' )
		await func ( event )

	async def close ( self ) -> None:
		await self.transport.close()


@contextlib.contextmanager
def close_if_oserror() -> Iterator[None]:
	try:
		yield
	except OSError as e:
		raise Closed ( repr ( e ) ) from e


class AsyncServer ( AsyncEventHandler ):
	proto: ServerProtocol

	def __init__ ( self,
		transport: AsyncTransport,
		proto: ServerProtocol,
	) -> None:
		self.transport = transport
		self.proto = proto

	async def run ( self ) -> None:
		log = logger.getChild ( 'AsyncServer.run' )
		try:
			with close_if_oserror():
				for event in self.proto.startup():
					await self._on_event ( event )

				while True:
					data = await self.transport.read()
					log.debug ( f'C>{b2s(data,errors="replace").rstrip()}' )
					for event in self.proto.receive ( data ):
						await self._on_event ( event )
		except Closed as e:
			log.debug ( f'connection closed with reason: {e.args[0]!r}' )
		except ProtocolError as e:
			log.warning ( f'aborting connection: {e!r}' )
		finally:
			await self.close()
		await self.on_finished()

	async def on_finished ( self ) -> None:
		# override this to act on the protocol's final state once the connection is gone
		pass
