from __future__ import annotations

# python imports:
import logging
from pydantic import Field, ValidationError, field_validator # pip install pydantic
from pydantic_settings import BaseSettings, SettingsConfigDict # pip install pydantic-settings
from typing import Any, Dict, Mapping, Optional as Opt

# smtp_forward imports:
from smtp_proto import DEFAULT_MAX_BODY_SIZE

logger = logging.getLogger ( __name__ )

LOG_LEVELS = ( 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL' )


class ConfigError ( Exception ):
	pass


def _config_error ( e: ValidationError ) -> ConfigError:
	problems = '; '.join (
		f'{".".join ( str ( part ) for part in err["loc"] )}: {err["msg"]}'
		for err in e.errors()
	)
	return ConfigError ( f'invalid configuration: {problems}' )


class Config ( BaseSettings ):
	'''
	runtime settings

	Each field is read from the environment variable named by its alias.
	Blank variables count as unset. Command line options are layered on top
	with replace().
	'''
	model_config = SettingsConfigDict (
		case_sensitive = True,
		env_ignore_empty = True,
		extra = 'ignore',
		populate_by_name = True,
		str_strip_whitespace = True,
	)

	host: str = Field ( '0.0.0.0', alias = 'HOST' )
	port: int = Field ( 25, alias = 'PORT', ge = 0, le = 65535 )
	domain: str = Field ( 'localhost', alias = 'DOMAIN' )
	service_name: str = Field ( 'smtp-forward', alias = 'SERVICE_NAME' )
	sink_url: Opt[str] = Field ( None, alias = 'SINK_URL' ) # no url means messages are only logged
	sink_token: str = Field ( '', alias = 'EMAIL_TOKEN', repr = False )
	sink_timeout: float = Field ( 30.0, alias = 'SINK_TIMEOUT', gt = 0 )
	max_message_size: int = Field ( DEFAULT_MAX_BODY_SIZE, alias = 'MAX_MESSAGE_SIZE', gt = 0 )
	idle_timeout: float = Field ( 300.0, alias = 'IDLE_TIMEOUT', gt = 0 )
	log_level: str = Field ( 'INFO', alias = 'LOG_LEVEL' )

	@field_validator ( 'domain' )
	@classmethod
	def _domain ( cls, value: str ) -> str:
		if not value or any ( c.isspace() for c in value ):
			raise ValueError ( f'invalid domain {value!r}' )
		return value

	@field_validator ( 'service_name' )
	@classmethod
	def _service_name ( cls, value: str ) -> str:
		if not value or '\n' in value or '\r' in value:
			raise ValueError ( f'invalid service name {value!r}' )
		return value

	@field_validator ( 'log_level' )
	@classmethod
	def _log_level ( cls, value: str ) -> str:
		value = value.upper()
		if value not in LOG_LEVELS:
			raise ValueError ( f'expected one of {", ".join(LOG_LEVELS)}' )
		return value

	@classmethod
	def from_env ( cls, environ: Opt[Mapping[str,str]] = None ) -> Config:
		'''
		settings from os.environ, or from the given mapping only ( which
		bypasses os.environ entirely )
		'''
		log = logger.getChild ( 'Config.from_env' )
		try:
			if environ is None:
				return cls()
			aliases = { field.alias for field in cls.model_fields.values() }
			values: Dict[str,str] = {
				key: value.strip()
				for key, value in environ.items()
				if key in aliases and value.strip()
			}
			log.debug ( f'using {sorted(values)}' )
			return cls.model_validate ( values )
		except ValidationError as e:
			raise _config_error ( e ) from e

	def replace ( self, **kwargs: Any ) -> Config:
		# model_copy() skips validation, so the merged settings are validated afresh
		updates = { k: v for k, v in kwargs.items() if v is not None }
		try:
			return type ( self ).model_validate ( self.model_copy ( update = updates ).model_dump() )
		except ValidationError as e:
			raise _config_error ( e ) from e
