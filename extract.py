from __future__ import annotations

# python imports:
import email
import email.policy
from email.message import EmailMessage
import logging
import re
from typing import List, Optional as Opt, Tuple

# smtp_forward imports:
from message import Attachment, Contact, Content, Message
from smtp_proto import PendingMail
from util import s2b

logger = logging.getLogger ( __name__ )

_r_newline = re.compile ( r'\r?\n' )


class ExtractionDiscard ( Exception ):
	pass


def unstuff ( transcript: str ) -> str:
	''' strip the terminating dot line and undo dot-stuffing ( RFC 5321 4.5.2 ) '''
	lines: List[str] = []
	for line in _r_newline.split ( transcript ):
		if line == '.':
			break
		lines.append ( line[1:] if line.startswith ( '.' ) else line )
	while lines and not lines[-1]:
		lines.pop()
	return ''.join ( f'{line}\n' for line in lines )


def parse ( transcript: str ) -> EmailMessage:
	text = unstuff ( transcript )
	if not text.strip():
		raise ExtractionDiscard ( 'empty message' )
	try:
		msg = email.message_from_bytes ( s2b ( text ), policy = email.policy.default )
	except Exception as e:
		raise ExtractionDiscard ( f'unable to parse message: {e!r}' ) from e
	assert isinstance ( msg, EmailMessage )
	return msg


def contacts ( msg: EmailMessage, name: str ) -> Tuple[Contact,...]:
	result: List[Contact] = []
	for header in msg.get_all ( name ) or ():
		for address in getattr ( header, 'addresses', () ):
			addr_spec = address.addr_spec
			result.append ( Contact (
				email = addr_spec if addr_spec and addr_spec != '<>' else None,
				name = address.display_name or None,
			) )
	return tuple ( result )


def mime_type ( part: EmailMessage ) -> Opt[str]:
	header = part.get ( 'content-type' )
	if header is None:
		return None
	ctype = str ( header ).split ( ';', 1 )[0].strip().lower()
	if not ctype:
		return None
	maintype, _, subtype = ctype.partition ( '/' )
	return f'{maintype}/{subtype}' if subtype else maintype


def text_value ( part: EmailMessage ) -> Opt[str]:
	log = logger.getChild ( 'text_value' )
	if part.is_multipart() or part.get_content_maintype() != 'text':
		return None
	try:
		value = part.get_content()
	except ( LookupError, UnicodeError, ValueError ) as e:
		log.debug ( f'part is not decodable as text: {e!r}' )
		return None
	return value if isinstance ( value, str ) else None


def attachment ( part: EmailMessage ) -> Opt[Attachment]:
	filename = part.get_filename()
	if not filename or part.is_multipart():
		return None
	payload = part.get_payload ( decode = True )
	return Attachment ( filename, payload if isinstance ( payload, bytes ) else b'' )


def _sender ( msg: EmailMessage, envelope: Opt[PendingMail] ) -> Contact:
	senders = contacts ( msg, 'from' )
	if not senders:
		if envelope is not None and envelope.sender:
			return Contact ( email = envelope.sender )
		raise ExtractionDiscard ( 'no From address' )
	if len ( senders ) != 1:
		raise ExtractionDiscard ( f'{len(senders)} From addresses not supported' )
	sender = senders[0]
	if sender.email is None:
		raise ExtractionDiscard ( 'From address is empty' )
	return sender


def _extract ( transcript: str, envelope: Opt[PendingMail] ) -> Message:
	msg = parse ( transcript )
	to = contacts ( msg, 'to' )
	if not to and 'to' not in msg and envelope is not None:
		to = tuple ( Contact ( email = rcpt ) for rcpt in envelope.recipients )
	subject = msg.get ( 'subject' )
	parts = list ( msg.walk() )
	message = Message (
		sender = _sender ( msg, envelope ),
		reply_to = contacts ( msg, 'reply-to' ),
		to = to,
		cc = contacts ( msg, 'cc' ),
		bcc = contacts ( msg, 'bcc' ),
		subject = None if subject is None else str ( subject ),
		content = tuple ( Content ( mime_type ( part ), text_value ( part ) ) for part in parts ),
		attachments = tuple ( a for a in map ( attachment, parts ) if a is not None ),
	)
	try:
		message.to_json()
	except ( TypeError, ValueError ) as e:
		raise ExtractionDiscard ( f'unable to serialize message: {e!r}' ) from e
	return message


def extract ( transcript: str, envelope: Opt[PendingMail] = None ) -> Opt[Message]:
	'''
	turn a DATA transcript into a Message

	envelope supplies the sender when the message has no From header and
	the recipients when it has no To header. Returns None when the message
	has to be discarded, there is nobody left to tell about it.
	'''
	log = logger.getChild ( 'extract' )
	try:
		message = _extract ( transcript, envelope )
	except ExtractionDiscard as e:
		log.warning ( f'discarding message: {e.args[0]}' )
		return None
	log.debug ( f'extracted {message!r}' )
	return message
