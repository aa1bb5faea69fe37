#region PROLOGUE --------------------------------------------------------------
from __future__ import annotations

# python imports:
import logging
import re
from typing import (
	Callable, Dict, Iterator, List, Optional as Opt, Tuple, Type,
)

# smtp_forward imports:
from base_proto import (
	Closed, DecodeError, Event, ProtocolError, SendDataEvent, ServerProtocol,
)
from util import BYTES, b2s, s2b

logger = logging.getLogger ( __name__ )

MAX_CHUNK = 65536
DEFAULT_MAX_BODY_SIZE = 10 * 1024 * 1024
TERMINATOR = '\r\n.\r\n'

# RFC5321#2.4 command verbs are not case sensitive
_r_mail_from = re.compile ( r'FROM\s*:\s*(?:<([^>]*)>|([^\s<>]+))', re.I )
_r_rcpt_to = re.compile ( r'TO\s*:\s*(?:<([^>]*)>|([^\s<>]+))', re.I )

_illegal_mailboxes = ( 'admin', 'postmaster', 'hostmaster' )

#endregion
#region RESPONSES -------------------------------------------------------------

OK = b'250 Ok\n'
AUTH_OK = b'235 Ok\n'
SEND_DATA = b'354 End data with <CR><LF>.<CR><LF>\n'
BYE = b'221 Bye\n'
TOO_LARGE = b'552 Message exceeds fixed maximum message size\n'
WITHHOLD: Opt[bytes] = None # send nothing (yet)

def greeting ( service_name: str ) -> bytes:
	return s2b ( f'220 {service_name}\n' )

def ehlo_greeting ( domain: str ) -> bytes:
	return s2b ( f'250-{domain} Hello {domain}\n250 AUTH PLAIN LOGIN\n' )

#endregion
#region STATES ----------------------------------------------------------------

class ProtocolViolation ( ProtocolError ):
	pass


def legal_recipient ( address: str ) -> bool:
	'''
	Filter out admin, administrator, postmaster and hostmaster so nobody can
	have certificates issued for the domain through us. The check is
	over-eager on purpose.
	'''
	address = address.lower()
	return not any ( name in address for name in _illegal_mailboxes )


class PendingMail:
	def __init__ ( self, sender: str, recipients: Opt[List[str]] = None ) -> None:
		self.sender = sender
		self.recipients: List[str] = list ( recipients or () )
		self.size = 0
		self._chunks: List[str] = []
		self._tail = '\r\n' # the CRLF that ended the DATA command

	@property
	def raw_body ( self ) -> str:
		if len ( self._chunks ) > 1:
			self._chunks = [ ''.join ( self._chunks ) ]
		return self._chunks[0] if self._chunks else ''

	@property
	def terminated ( self ) -> bool:
		return self._tail == TERMINATOR

	def append ( self, text: str ) -> None:
		self._chunks.append ( text )
		self.size += len ( text )
		self._tail = ( self._tail + text )[-len ( TERMINATOR ):]

	def __eq__ ( self, other: object ) -> bool:
		if not isinstance ( other, PendingMail ):
			return NotImplemented
		return (
			self.sender == other.sender
			and self.recipients == other.recipients
			and self.raw_body == other.raw_body
		)

	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}(sender={self.sender!r}, recipients={self.recipients!r}, size={self.size!r})'


class State:
	def __eq__ ( self, other: object ) -> bool:
		return type ( self ) is type ( other )

	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}()'


class Fresh ( State ):
	pass


class Greeted ( State ):
	pass


class MailState ( State ):
	def __init__ ( self, mail: PendingMail ) -> None:
		self.mail = mail

	def __eq__ ( self, other: object ) -> bool:
		return type ( self ) is type ( other ) and self.mail == getattr ( other, 'mail', None )

	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}({self.mail!r})'


class ReceivingRecipients ( MailState ):
	pass


class ReceivingData ( MailState ):
	pass


class Completed ( MailState ):
	pass


class Rejected ( State ):
	pass

#endregion
#region TRANSITIONS -----------------------------------------------------------

Transition = Tuple[State,Opt[bytes]]
Handler = Callable[['StateMachine',State,str,str],Transition]

ANY_VERB = '*'
ANY_STATE = State

_transitions: Dict[Tuple[str,Type[State]],Handler] = {}

def transition_for ( verbs: str, statecls: Type[State] ) -> Callable[[Handler],Handler]:
	def registrar ( func: Handler ) -> Handler:
		for verb in verbs.split():
			assert verb == verb.lower(), f'invalid {verb=}'
			assert ( verb, statecls ) not in _transitions, f'duplicate transition {verb!r} {statecls.__name__}'
			_transitions[( verb, statecls )] = func
		return func
	return registrar


def _address ( regex: re.Pattern[str], argtext: str, verb: str ) -> str:
	m = regex.match ( argtext )
	if not m:
		raise ProtocolViolation ( f'malformed {verb.upper()} input: {argtext!r}' )
	return ( m.group ( 1 ) if m.group ( 1 ) is not None else m.group ( 2 ) ).strip()


@transition_for ( 'ehlo', Fresh )
def _ehlo ( machine: StateMachine, state: State, argtext: str, line: str ) -> Transition:
	return Greeted(), machine.ehlo_greeting


@transition_for ( 'helo', Fresh )
def _helo ( machine: StateMachine, state: State, argtext: str, line: str ) -> Transition:
	return Greeted(), OK


@transition_for ( 'noop help info vrfy expn', ANY_STATE )
def _noop ( machine: StateMachine, state: State, argtext: str, line: str ) -> Transition:
	return state, OK


@transition_for ( 'rset', ANY_STATE )
def _rset ( machine: StateMachine, state: State, argtext: str, line: str ) -> Transition:
	log = logger.getChild ( '_rset' )
	if isinstance ( state, MailState ):
		log.debug ( f'discarding {state.mail!r}' )
	return Fresh(), OK


@transition_for ( 'auth', ANY_STATE )
def _auth ( machine: StateMachine, state: State, argtext: str, line: str ) -> Transition:
	log = logger.getChild ( '_auth' )
	log.debug ( 'acknowledging AUTH without checking credentials' )
	return state, AUTH_OK


@transition_for ( 'mail', Greeted )
def _mail_from ( machine: StateMachine, state: State, argtext: str, line: str ) -> Transition:
	log = logger.getChild ( '_mail_from' )
	sender = _address ( _r_mail_from, argtext, 'mail' )
	log.debug ( f'FROM: {sender}' )
	return ReceivingRecipients ( PendingMail ( sender ) ), OK


@transition_for ( 'rcpt', ReceivingRecipients )
def _rcpt_to ( machine: StateMachine, state: State, argtext: str, line: str ) -> Transition:
	log = logger.getChild ( '_rcpt_to' )
	assert isinstance ( state, ReceivingRecipients )
	recipient = _address ( _r_rcpt_to, argtext, 'rcpt' )
	log.debug ( f'TO: {recipient}' )
	if legal_recipient ( recipient ):
		state.mail.recipients.append ( recipient )
	else:
		log.warning ( f'illegal recipient: {recipient}' )
	return ReceivingRecipients ( state.mail ), OK


@transition_for ( 'data', ReceivingRecipients )
def _data ( machine: StateMachine, state: State, argtext: str, line: str ) -> Transition:
	assert isinstance ( state, ReceivingRecipients )
	return ReceivingData ( state.mail ), SEND_DATA


@transition_for ( 'quit', ReceivingData )
def _quit_with_data ( machine: StateMachine, state: State, argtext: str, line: str ) -> Transition:
	log = logger.getChild ( '_quit_with_data' )
	assert isinstance ( state, ReceivingData )
	mail = state.mail
	log.debug ( f'received data: FROM: {mail.sender} TO: {", ".join(mail.recipients)} SIZE: {mail.size}' )
	return Completed ( mail ), BYE


@transition_for ( 'quit', ANY_STATE )
def _quit ( machine: StateMachine, state: State, argtext: str, line: str ) -> Transition:
	log = logger.getChild ( '_quit' )
	if not isinstance ( state, Completed ):
		log.debug ( f'received QUIT before getting any data ({state!r})' )
	return state, BYE


@transition_for ( ANY_VERB, ReceivingData )
def _receive_data ( machine: StateMachine, state: State, argtext: str, line: str ) -> Transition:
	log = logger.getChild ( '_receive_data' )
	assert isinstance ( state, ReceivingData )
	mail = state.mail
	if mail.terminated:
		raise ProtocolViolation ( f'unexpected {line.rstrip()!r} after the end of data' )
	if machine.max_body_size is not None and mail.size + len ( line ) > machine.max_body_size:
		log.warning ( f'message from {mail.sender!r} exceeds {machine.max_body_size} characters, rejecting' )
		return Rejected(), TOO_LARGE
	mail.append ( line )
	return ReceivingData ( mail ), ( OK if mail.terminated else WITHHOLD )


class StateMachine:
	'''
	SMTP receiving state machine

	transition() is a pure function of ( state, line ) given this machine's
	configuration. A PendingMail is moved from the old state into the new
	one, so a state must not be reused once it has been transitioned from.
	handle() is the stateful convenience wrapper used by Server.
	'''
	def __init__ ( self,
		domain: str,
		max_body_size: Opt[int] = DEFAULT_MAX_BODY_SIZE,
	) -> None:
		self.domain = domain
		self.max_body_size = max_body_size
		self.ehlo_greeting = ehlo_greeting ( domain )
		self.state: State = Fresh()

	def transition ( self, state: State, line: str ) -> Transition:
		words = line.split ( None, 1 )
		verb = words[0].lower() if words else ''
		argtext = words[1].strip() if len ( words ) > 1 else ''
		if isinstance ( state, ReceivingData ) and not state.mail.terminated:
			# everything up to the terminator is message content
			return _receive_data ( self, state, argtext, line )
		handler = (
			_transitions.get ( ( verb, type ( state ) ) )
			or _transitions.get ( ( verb, ANY_STATE ) )
			or _transitions.get ( ( ANY_VERB, type ( state ) ) )
		)
		if handler is None:
			if not verb:
				raise ProtocolViolation ( f'received empty command in state {state!r}' )
			raise ProtocolViolation ( f'unexpected {line.rstrip()!r} in state {state!r}' )
		return handler ( self, state, argtext, line )

	def handle ( self, line: str ) -> Opt[bytes]:
		log = logger.getChild ( 'StateMachine.handle' )
		log.debug ( f'received {line.rstrip()!r} in state {self.state!r}' )
		self.state, response = self.transition ( self.state, line )
		return response

	def hangup ( self ) -> None:
		''' the client went away without QUIT, finish any data it was sending '''
		if isinstance ( self.state, ReceivingData ):
			self.state, _ = _quit_with_data ( self, self.state, '', 'QUIT' )

#endregion
#region SERVER ----------------------------------------------------------------

class Server ( ServerProtocol ):
	_MAXLINE = MAX_CHUNK

	def __init__ ( self,
		hostname: str,
		service_name: str = 'smtp-forward',
		max_body_size: Opt[int] = DEFAULT_MAX_BODY_SIZE,
	) -> None:
		super().__init__ ( hostname )
		self.service_name = service_name
		self.machine = StateMachine ( hostname, max_body_size )

	@property
	def state ( self ) -> State:
		return self.machine.state

	def startup ( self ) -> Iterator[Event]:
		yield SendDataEvent ( greeting ( self.service_name ) )

	def _receive_line ( self, line: BYTES ) -> Iterator[Event]:
		log = logger.getChild ( 'Server._receive_line' )
		try:
			text = b2s ( line )
		except UnicodeDecodeError as e:
			raise DecodeError ( f'invalid text received: {e}' ) from e
		response = self.machine.handle ( text )
		if response is WITHHOLD:
			log.debug ( 'not responding, awaiting more data' )
			return
		yield SendDataEvent ( response )
		if response == BYE:
			raise Closed ( 'QUIT' )
		if isinstance ( self.machine.state, Rejected ):
			raise Closed ( 'message too large' )

	def _receive_eof ( self ) -> Iterator[Event]:
		log = logger.getChild ( 'Server._receive_eof' )
		log.info ( 'received EOF' )
		if self._buf:
			buf, self._buf = self._buf, b''
			yield from self._receive_line ( buf )
		self.machine.hangup()
		raise Closed ( 'EOF' )

#endregion
