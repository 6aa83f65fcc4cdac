"""CSRF token discovery and injection.

Before a state-changing request is sent, the filter fetches the page at the
configured token path (or reads markup handed to it), finds the anti-forgery
token in it, and adds the token to the request as a form parameter or a
header depending on CsrfConfig.prioritization.

Token discovery, in order:
1. An explicit csrf_input_field_name: the input (or meta tag) with that name.
2. Auto-detection: the only hidden input on the page, otherwise the first
   hidden input whose name looks like an anti-forgery token.
3. A ``<meta name="_csrf">`` tag, with ``<meta name="_csrf_header">``
   naming the header to use.
"""

import logging
import re
from urllib.parse import urljoin

from lxml import etree
from lxml import html as lxml_html

from restchain.pipeline.common.filter import FilterContext
from restchain.pipeline.common.printer import format_request, format_response
from restchain.pipeline.config import CsrfConfig, CsrfPrioritization
from restchain.pipeline.data_types import (
    CsrfData,
    Headers,
    HttpMethod,
    RequestSpecification,
    Response,
    ResponseSpecification,
)

logger = logging.getLogger(__name__)

# Scratch-store key under which the filter publishes the CsrfData it used.
CSRF_DATA = "CSRF_DATA"

SAFE_METHODS = frozenset({HttpMethod.GET, HttpMethod.HEAD})

_CSRF_NAME_PATTERN = re.compile(
    r"csrf|xsrf|authenticity|nonce|anti[-_]?forgery|requestverificationtoken|token",
    re.IGNORECASE,
)

_HIDDEN_INPUTS = etree.XPath(
    "//input[translate(@type, 'HIDEN', 'hiden') = 'hidden'][@name]"
)
_NAMED_INPUT = etree.XPath("//input[@name = $name]")
_META_CONTENT = etree.XPath("//meta[@name = $name]/@content")


def _parse(markup: str | bytes) -> etree._Element | None:
    if not markup or not markup.strip():
        return None
    try:
        return lxml_html.fromstring(markup)
    except (etree.ParserError, ValueError):
        return None


def _first_meta(tree: etree._Element, name: str) -> str | None:
    values = _META_CONTENT(tree, name=name)
    return str(values[0]) if values else None


def find_csrf_data(markup: str | bytes, config: CsrfConfig) -> CsrfData | None:
    """Find the CSRF token in markup.

    Args:
        markup: HTML of the page holding the token.
        config: Decides the field name (explicit or auto-detected) and where
            the token goes.

    Returns:
        The token and its target name, or None if no token was found.
    """
    tree = _parse(markup)
    if tree is None:
        return None

    field_name: str | None = None
    token: str | None = None
    header_name = _first_meta(tree, "_csrf_header") or config.csrf_header_name

    if config.csrf_input_field_name is not None:
        inputs = _NAMED_INPUT(tree, name=config.csrf_input_field_name)
        if inputs:
            field_name = config.csrf_input_field_name
            token = inputs[0].get("value", "")
        else:
            token = _first_meta(tree, config.csrf_input_field_name)
            field_name = config.csrf_input_field_name if token is not None else None
    else:
        hidden = _HIDDEN_INPUTS(tree)
        if len(hidden) != 1:
            hidden = [h for h in hidden if _CSRF_NAME_PATTERN.search(h.get("name"))]
        if hidden:
            field_name = hidden[0].get("name")
            token = hidden[0].get("value", "")
        else:
            token = _first_meta(tree, "_csrf")
            field_name = "_csrf" if token is not None else None

    if field_name is None or token is None:
        return None

    if config.prioritization is CsrfPrioritization.HEADER:
        return CsrfData(header_name, token, CsrfPrioritization.HEADER)
    return CsrfData(field_name, token, CsrfPrioritization.FORM_PARAMETER)


def inject_csrf_data(request_spec: RequestSpecification, data: CsrfData) -> bool:
    """Add the token to request_spec unless the caller already set it.

    Returns:
        True if the token was added.
    """
    if data.should_send_as_header:
        if request_spec.headers.has_header_with_name(data.name):
            return False
        request_spec.header(data.name, data.token)
        return True
    if request_spec.has_form_param(data.name):
        return False
    request_spec.form_param(data.name, data.token)
    return True


class CsrfFilter:
    """Filter that adds a CSRF token to state-changing requests.

    GET and HEAD requests pass through untouched. Without a token path (and
    without supplied markup) the filter does nothing.

    Example:
        config = CsrfConfig().with_csrf_token_path("/login")
        chain = FilterChain([CsrfFilter(config)], sender)
        chain.execute(RequestSpecification(HttpMethod.POST, url + "/login"))
    """

    def __init__(
        self, config: CsrfConfig | None = None, markup: str | bytes | None = None
    ) -> None:
        """Initialize the CSRF filter.

        Args:
            config: CSRF settings. Defaults to the request's config.csrf.
            markup: Page to take the token from instead of probing the server.
        """
        self.config = config
        self.markup = markup

    def filter(
        self,
        request_spec: RequestSpecification,
        response_spec: ResponseSpecification,
        ctx: FilterContext,
    ) -> Response:
        config = self.config or request_spec.config.csrf
        if request_spec.method in SAFE_METHODS:
            return ctx.next(request_spec, response_spec)
        if self.markup is None and not config.is_csrf_enabled:
            return ctx.next(request_spec, response_spec)

        markup = self.markup
        if markup is None:
            markup = self._probe(request_spec, config, ctx).text

        data = find_csrf_data(markup, config)
        if data is None:
            field = config.csrf_input_field_name or "[]"
            text = markup.decode("utf-8", "replace") if isinstance(markup, bytes) else markup
            raise ValueError(
                f"Couldn't find the CSRF input field with name {field} in "
                f"response. Response was:\n{text}"
            )

        if not inject_csrf_data(request_spec, data):
            logger.debug(f"Request already defines {data.name}, keeping it")
        ctx.set_value(CSRF_DATA, data)
        return ctx.next(request_spec, response_spec)

    def _probe(
        self,
        request_spec: RequestSpecification,
        config: CsrfConfig,
        ctx: FilterContext,
    ) -> Response:
        """GET the token page with the request's cookies and keep its cookies."""
        probe = RequestSpecification(
            method=HttpMethod.GET,
            url=urljoin(request_spec.url, config.csrf_token_path),
            headers=Headers([("Accept", "*/*")]),
            cookies=request_spec.cookies.copy(),
            config=request_spec.config,
        )
        if config.is_logging_enabled:
            logger.info(format_request(probe, config.log_detail))

        response = ctx.send(probe)

        if config.is_logging_enabled:
            logger.info(format_response(response, config.log_detail))

        # The token is usually bound to the session the probe just opened.
        for cookie in response.cookies:
            if not request_spec.cookies.has_cookie_with_name(cookie.name):
                request_spec.cookie(cookie.name, cookie.value)
        return response
