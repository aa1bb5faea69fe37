from __future__ import annotations

# python imports:
import logging
from typing import Optional as Opt

# smtp_forward imports:
from event_handling import AsyncServer
from extract import extract
from sink import DeliveryFailure, Sink
import smtp_proto as proto
from transport import AsyncTransport

logger = logging.getLogger ( __name__ )


class Server ( AsyncServer ):
	proto: proto.Server

	def __init__ ( self,
		transport: AsyncTransport,
		hostname: str,
		sink: Sink,
		service_name: str = 'smtp-forward',
		max_body_size: Opt[int] = proto.DEFAULT_MAX_BODY_SIZE,
	) -> None:
		super().__init__ ( transport, proto.Server ( hostname, service_name, max_body_size ) )
		self.sink = sink

	async def on_finished ( self ) -> None:
		log = logger.getChild ( 'Server.on_finished' )
		state = self.proto.state
		log.debug ( f'state machine exited {state!r}' )
		if isinstance ( state, proto.ReceivingData ):
			if not state.mail.terminated:
				log.info ( f'connection ended before QUIT, discarding {state.mail!r}' )
				return
			# acknowledged with 250 Ok already
			log.info ( f'connection ended after the end of data, keeping {state.mail!r}' )
		elif not isinstance ( state, proto.Completed ):
			return
		message = extract ( state.mail.raw_body, state.mail )
		if message is None:
			return
		log.info ( f'sending mail from {state.mail.sender!r}' )
		try:
			await self.sink.deliver ( message )
		except DeliveryFailure as e:
			log.warning ( f'delivery failed: {e}' )
