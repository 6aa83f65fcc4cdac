"""Configuration models for the interception pipeline.

Configs are immutable pydantic models. Each ``with_*`` helper returns a new
instance, so one RestConfig can be shared between threads and request
specifications without copying.

Loading configuration from files or the environment is the DSL's job; this
module only defines the shape and the validation rules.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from restchain.pipeline.parsing import Parser, ParserRegistry

DEFAULT_SESSION_ID_NAME = "JSESSIONID"
DEFAULT_CSRF_HEADER_NAME = "X-CSRF-TOKEN"


class CsrfPrioritization(Enum):
    """Where a discovered CSRF token is placed in the outgoing request."""

    FORM_PARAMETER = "form_parameter"
    HEADER = "header"


class LogDetail(Enum):
    """How much of a request or response the logging filters print."""

    ALL = "all"
    METHOD = "method"
    URI = "uri"
    PARAMS = "params"
    HEADERS = "headers"
    COOKIES = "cookies"
    BODY = "body"
    STATUS = "status"


class SessionConfig(BaseModel):
    """Session management.

    Attributes:
        session_id_name: Name of the cookie carrying the session id.
        session_id_value: Session id sent with every request that does not
            define one itself. None means no default session.
    """

    model_config = ConfigDict(frozen=True)

    session_id_name: str = DEFAULT_SESSION_ID_NAME
    session_id_value: str | None = None

    @field_validator("session_id_name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Session id name cannot be empty.")
        return value

    def is_session_id_value_defined(self) -> bool:
        return bool(self.session_id_value and self.session_id_value.strip())

    def with_session_id_name(self, name: str) -> "SessionConfig":
        return SessionConfig(
            session_id_name=name, session_id_value=self.session_id_value
        )

    def with_session_id_value(self, value: str | None) -> "SessionConfig":
        return SessionConfig(
            session_id_name=self.session_id_name, session_id_value=value
        )


class LogConfig(BaseModel):
    """Shared settings for the logging filters."""

    model_config = ConfigDict(frozen=True)

    pretty_print: bool = True
    show_url_encoded_uri: bool = True
    blacklisted_headers: frozenset[str] = frozenset()

    def is_blacklisted(self, header_name: str) -> bool:
        lowered = header_name.lower()
        return any(h.lower() == lowered for h in self.blacklisted_headers)


class CsrfConfig(BaseModel):
    """Cross-site request forgery support.

    CSRF support is enabled as soon as a token path is configured. The token
    is looked up by input field name when csrf_input_field_name is set, and
    auto-detected otherwise.

    Example:
        config = CsrfConfig().with_csrf_token_path("/login")
        config = config.with_csrf_input_field_name("_csrf").send_csrf_token_as_header()
    """

    model_config = ConfigDict(frozen=True)

    csrf_token_path: str | None = None
    csrf_input_field_name: str | None = None
    csrf_header_name: str = DEFAULT_CSRF_HEADER_NAME
    prioritization: CsrfPrioritization = CsrfPrioritization.FORM_PARAMETER
    log_detail: LogDetail | None = None

    @field_validator("csrf_token_path", "csrf_input_field_name")
    @classmethod
    def _trim_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @property
    def is_csrf_enabled(self) -> bool:
        return self.csrf_token_path is not None

    @property
    def auto_detect_csrf_input_field_name(self) -> bool:
        return self.csrf_input_field_name is None

    @property
    def is_logging_enabled(self) -> bool:
        return self.log_detail is not None

    def with_csrf_token_path(self, path: str) -> "CsrfConfig":
        if path is None or not path.strip():
            raise ValueError("csrfTokenPath cannot be blank")
        return self.model_copy(update={"csrf_token_path": path.strip()})

    def with_csrf_input_field_name(self, name: str) -> "CsrfConfig":
        if name is None or not name.strip():
            raise ValueError("CSRF input field name cannot be blank")
        return self.model_copy(update={"csrf_input_field_name": name.strip()})

    def auto_detect_csrf_input_field(self) -> "CsrfConfig":
        return self.model_copy(update={"csrf_input_field_name": None})

    def send_csrf_token_as_header(
        self, header_name: str | None = None
    ) -> "CsrfConfig":
        update: dict[str, object] = {
            "prioritization": CsrfPrioritization.HEADER
        }
        if header_name:
            update["csrf_header_name"] = header_name
        return self.model_copy(update=update)

    def send_csrf_token_as_form_param(self) -> "CsrfConfig":
        return self.model_copy(
            update={"prioritization": CsrfPrioritization.FORM_PARAMETER}
        )

    def logging_enabled(self, log_detail: LogDetail = LogDetail.ALL) -> "CsrfConfig":
        return self.model_copy(update={"log_detail": log_detail})


class RestConfig(BaseModel):
    """Aggregate configuration referenced by request and response specs.

    The parser registry is mutable by nature (parsers are registered after
    construction), so it is excluded from model dumps and compared by identity.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    session: SessionConfig = Field(default_factory=SessionConfig)
    csrf: CsrfConfig = Field(default_factory=CsrfConfig)
    log: LogConfig = Field(default_factory=LogConfig)
    parser_registry: ParserRegistry = Field(
        default_factory=ParserRegistry, exclude=True, repr=False
    )

    def with_session(self, session: SessionConfig) -> "RestConfig":
        return self.model_copy(update={"session": session})

    def with_csrf(self, csrf: CsrfConfig) -> "RestConfig":
        return self.model_copy(update={"csrf": csrf})

    def with_log(self, log: LogConfig) -> "RestConfig":
        return self.model_copy(update={"log": log})

    def with_default_parser(self, parser: Parser) -> "RestConfig":
        registry = self.parser_registry.copy()
        registry.register_default_parser(parser)
        return self.model_copy(update={"parser_registry": registry})

    def with_parser(self, content_type: str, parser: Parser) -> "RestConfig":
        registry = self.parser_registry.copy()
        registry.register_parser(content_type, parser)
        return self.model_copy(update={"parser_registry": registry})
