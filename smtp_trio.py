from __future__ import annotations

# python imports:
import logging
import trio # pip install trio
from typing import Any, Type

# smtp_forward imports:
from config import Config
from sink import Sink
import smtp_async
from transport_trio import TrioTransport as Transport

logger = logging.getLogger ( __name__ )


class Server ( smtp_async.Server ):
	@classmethod
	def from_stream ( cls: Type[Server],
		stream: trio.abc.Stream,
		config: Config,
		sink: Sink,
	) -> Server:
		transport = Transport ( stream, read_timeout = config.idle_timeout )
		return cls ( transport, config.domain, sink, config.service_name, config.max_message_size )


async def handle_connection ( stream: trio.abc.Stream, config: Config, sink: Sink ) -> None:
	log = logger.getChild ( 'handle_connection' )
	srv = Server.from_stream ( stream, config, sink )
	peer = srv.transport.peer
	log.info ( f'accepted a connection from {peer}' )
	try:
		await srv.run()
	except Exception:
		# one broken connection must not take the listener down with it
		log.exception ( f'internal error serving {peer}:' )


async def serve ( config: Config, sink: Sink, *, task_status: Any = trio.TASK_STATUS_IGNORED ) -> None:
	log = logger.getChild ( 'serve' )
	listeners = await trio.open_tcp_listeners ( config.port, host = config.host )
	for listener in listeners:
		log.info ( f'listening on: {listener.socket.getsockname()}' )

	async def handler ( stream: trio.SocketStream ) -> None:
		await handle_connection ( stream, config, sink )

	await trio.serve_listeners ( handler, listeners, task_status = task_status )
