# python imports:
from abc import ABCMeta, abstractmethod
import logging

# smtp_forward imports:
from util import BYTES

logger = logging.getLogger ( __name__ )


class AsyncTransport ( metaclass = ABCMeta ):
	'''
	one client connection as seen by the connection handler

	read() returns b'' once the peer has hung up and raises TimeoutError when
	the peer stays silent past the transport's idle deadline. TimeoutError is
	an OSError, so close_if_oserror() turns it into Closed like any other I/O
	failure.
	'''
	@property
	def peer ( self ) -> str:
		# human readable description of the remote end, for logging only
		return '(unknown peer)'

	@abstractmethod
	async def read ( self ) -> bytes:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.read()' )

	@abstractmethod
	async def write ( self, data: BYTES ) -> None:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.write()' )

	@abstractmethod
	async def close ( self ) -> None:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.close()' )
