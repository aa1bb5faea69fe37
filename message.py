from __future__ import annotations

# python imports:
from dataclasses import dataclass
import json
from typing import Any, Dict, List, Optional as Opt, Tuple


@dataclass ( frozen = True )
class Contact:
	email: Opt[str] = None
	name: Opt[str] = None

	def to_dict ( self ) -> Dict[str,Any]:
		d: Dict[str,Any] = { 'email': self.email }
		if self.name is not None:
			d['name'] = self.name
		return d


@dataclass ( frozen = True )
class Content:
	mime: Opt[str] = None # 'type/subtype' or a bare 'type'
	value: Opt[str] = None # None unless the part decodes as text

	def to_dict ( self ) -> Dict[str,Any]:
		return { 'mime': self.mime, 'value': self.value }


@dataclass ( frozen = True )
class Attachment:
	filename: str
	content: bytes

	def to_dict ( self ) -> Dict[str,Any]:
		return {
			'filename': self.filename,
			'content': list ( self.content ),
		}


@dataclass ( frozen = True )
class Message:
	sender: Contact
	reply_to: Tuple[Contact,...] = ()
	to: Tuple[Contact,...] = ()
	cc: Tuple[Contact,...] = ()
	bcc: Tuple[Contact,...] = ()
	subject: Opt[str] = None
	content: Tuple[Content,...] = ()
	attachments: Tuple[Attachment,...] = ()

	def to_dict ( self ) -> Dict[str,Any]:
		def contacts ( seq: Tuple[Contact,...] ) -> List[Dict[str,Any]]:
			return [ contact.to_dict() for contact in seq ]
		return {
			'from': self.sender.to_dict(),
			'replyTo': contacts ( self.reply_to ),
			'to': contacts ( self.to ),
			'cc': contacts ( self.cc ),
			'bcc': contacts ( self.bcc ),
			'subject': self.subject,
			'content': [ content.to_dict() for content in self.content ],
			'attachments': [ attachment.to_dict() for attachment in self.attachments ],
		}

	def to_json ( self ) -> str:
		return json.dumps ( self.to_dict() )
