from __future__ import annotations

# python imports:
from abc import ABCMeta, abstractmethod
import httpx # pip install httpx
import logging
from typing import Dict, Optional as Opt

# smtp_forward imports:
from message import Message

logger = logging.getLogger ( __name__ )


class DeliveryFailure ( Exception ):
	pass


class Sink ( metaclass = ABCMeta ):
	'''
	where finished messages go

	delivery is best effort: the SMTP client has already been told the
	message was accepted by the time deliver() is called.
	'''
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}()'

	@abstractmethod
	async def deliver ( self, message: Message ) -> None:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.deliver()' )


class LogSink ( Sink ):
	async def deliver ( self, message: Message ) -> None:
		log = logger.getChild ( 'LogSink.deliver' )
		log.info ( f'received message from {message.sender.email!r} for {len(message.to)} recipient(s): {message.subject!r}' )
		log.debug ( message.to_json() )


class HttpSink ( Sink ):
	def __init__ ( self,
		url: str,
		token: str = '',
		timeout: float = 30.0,
		transport: Opt[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.url = url
		self.token = token
		self.timeout = timeout
		self.transport = transport # tests inject an httpx.MockTransport here

	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}(url={self.url!r})' # <-- intentionally not showing token

	async def deliver ( self, message: Message ) -> None:
		log = logger.getChild ( 'HttpSink.deliver' )
		headers: Dict[str,str] = { 'Content-Type': 'application/json' }
		if self.token:
			headers['Authorization'] = self.token
		log.debug ( f'sending message from {message.sender.email!r} to {self.url}' )
		try:
			async with httpx.AsyncClient ( timeout = self.timeout, transport = self.transport ) as client:
				response = await client.post ( self.url, content = message.to_json(), headers = headers )
		except httpx.HTTPError as e:
			raise DeliveryFailure ( f'unable to send to {self.url}: {e!r}' ) from e
		log.debug ( f'sink responded {response.status_code}: {response.text}' )
		if response.is_error:
			raise DeliveryFailure ( f'{self.url} rejected message with HTTP {response.status_code}' )
