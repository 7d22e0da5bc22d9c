import logging

from ldap3 import ALL_ATTRIBUTES, BASE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.dn import escape_rdn

from lms_backend.core import config

logger = logging.getLogger(__name__)


def build_server() -> Server:
    return Server(config.LDAP_URL, connect_timeout=config.LDAP_CONNECT_TIMEOUT)


def build_dn(username: str) -> str:
    return f"uid={escape_rdn(username)},{config.LDAP_SEARCH_BASE}"


def _first(values) -> str | None:
    if isinstance(values, (list, tuple)):
        return str(values[0]) if values else None
    return str(values) if values is not None else None


def ldap_login(username: str, password: str) -> dict | None:
    """Bind as ``username`` and return the directory entry, or ``None``.

    The connection is released whatever the outcome; directory errors are
    logged and treated as a failed login.
    """
    if not config.LDAP_ENABLED or not username or not password:
        return None

    dn = build_dn(username)
    connection = None
    try:
        connection = Connection(build_server(), user=dn, password=password)
        if not connection.bind():
            logger.info('LDAP bind rejected for %s', dn)
            return None

        connection.search(
            search_base=dn,
            search_filter='(objectClass=*)',
            search_scope=BASE,
            attributes=ALL_ATTRIBUTES,
        )
        attributes = connection.entries[0].entry_attributes_as_dict if connection.entries else {}
        return {
            'uid': username,
            'email': _first(attributes.get('mail')),
            'first_name': _first(attributes.get('givenName')),
            'last_name': _first(attributes.get('sn')),
        }
    except LDAPException:
        logger.exception('LDAP authentication failed for %s', dn)
        return None
    finally:
        if connection is not None:
            try:
                connection.unbind()
            except LDAPException:
                logger.warning('LDAP unbind failed for %s', dn)
