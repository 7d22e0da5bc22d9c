from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from ldap3.core.exceptions import LDAPSocketOpenError
from pydantic import ValidationError

from lms_backend.auth import jwt_handler, ldap_auth
from lms_backend.auth.dependencies import get_current_user, require_roles
from lms_backend.models.user import User
from lms_backend.routes import auth_routes
from lms_backend.routes.auth_routes import LoginRequest, RegisterRequest, login, register


class FakeConnection:
    instances: list = []

    def __init__(self, _server, user=None, password=None, bind_result=True, bind_error=None, entries=None):
        self.user = user
        self.password = password
        self.bind_result = bind_result
        self.bind_error = bind_error
        self.entries = entries or []
        self.unbound = False
        self.searched = None
        FakeConnection.instances.append(self)

    def bind(self):
        if self.bind_error is not None:
            raise self.bind_error
        return self.bind_result

    def search(self, search_base, search_filter, search_scope, attributes):
        self.searched = search_base

    def unbind(self):
        self.unbound = True


def _patch_connection(monkeypatch, **behaviour) -> None:
    FakeConnection.instances = []
    monkeypatch.setattr(ldap_auth, 'build_server', lambda: object())
    monkeypatch.setattr(ldap_auth.config, 'LDAP_ENABLED', True)
    monkeypatch.setattr(
        ldap_auth,
        'Connection',
        lambda server, user=None, password=None: FakeConnection(server, user=user, password=password, **behaviour),
    )


def test_ldap_login_returns_entry_and_unbinds(monkeypatch) -> None:
    entry = SimpleNamespace(entry_attributes_as_dict={'mail': ['jdoe@h-da.de'], 'givenName': ['Jane'], 'sn': ['Doe']})
    _patch_connection(monkeypatch, entries=[entry])

    result = ldap_auth.ldap_login('jdoe', 'secret')

    connection = FakeConnection.instances[0]
    assert result == {'uid': 'jdoe', 'email': 'jdoe@h-da.de', 'first_name': 'Jane', 'last_name': 'Doe'}
    assert connection.user == f'uid=jdoe,{ldap_auth.config.LDAP_SEARCH_BASE}'
    assert connection.searched == connection.user
    assert connection.unbound


def test_ldap_login_returns_none_on_rejected_bind(monkeypatch) -> None:
    _patch_connection(monkeypatch, bind_result=False)

    assert ldap_auth.ldap_login('jdoe', 'wrong') is None
    assert FakeConnection.instances[0].unbound


def test_ldap_login_swallows_directory_errors(monkeypatch) -> None:
    _patch_connection(monkeypatch, bind_error=LDAPSocketOpenError('unreachable'))

    assert ldap_auth.ldap_login('jdoe', 'secret') is None
    assert FakeConnection.instances[0].unbound


def test_ldap_login_escapes_username(monkeypatch) -> None:
    _patch_connection(monkeypatch, bind_result=False)

    ldap_auth.ldap_login('evil,ou=admins', 'secret')

    bind_dn = FakeConnection.instances[0].user
    assert bind_dn.startswith('uid=evil\\,')
    assert bind_dn.endswith(f',{ldap_auth.config.LDAP_SEARCH_BASE}')


def test_login_accepts_local_credentials_without_directory(db, make_user, monkeypatch) -> None:
    user = make_user(role='teacher', email='teacher@test.local', password='correct horse')
    monkeypatch.setattr(auth_routes.ldap_auth, 'ldap_login', lambda *_: pytest.fail('directory must not be asked'))

    response = login(LoginRequest(email='teacher@test.local', password='correct horse'), db=db)

    payload = jwt_handler.decode_access_token(response['access_token'])
    assert payload['sub'] == user.id
    assert payload['role'] == 'teacher'
    assert response['token_type'] == 'bearer'


def test_login_falls_back_to_directory_and_provisions_student(db, monkeypatch) -> None:
    monkeypatch.setattr(
        auth_routes.ldap_auth,
        'ldap_login',
        lambda username, password: {'uid': username, 'email': 'jdoe@h-da.de', 'first_name': 'Jane', 'last_name': 'Doe'},
    )

    response = login(LoginRequest(email='jdoe', password='secret'), db=db)

    user = db.query(User).filter(User.uid == 'jdoe').one()
    assert user.role == 'student'
    assert user.email == 'jdoe@h-da.de'
    assert response['user']['uid'] == 'jdoe'


def test_login_falls_back_to_directory_for_existing_user(db, make_user, monkeypatch) -> None:
    existing = make_user(role='teacher', uid='jdoe', password='local-secret')
    monkeypatch.setattr(
        auth_routes.ldap_auth,
        'ldap_login',
        lambda username, password: {'uid': username, 'email': None, 'first_name': None, 'last_name': None},
    )

    response = login(LoginRequest(email='jdoe', password='directory-secret'), db=db)

    assert response['user']['id'] == existing.id
    assert db.query(User).count() == 1


def test_login_rejects_inactive_user_matched_by_directory(db, make_user, monkeypatch) -> None:
    existing = make_user(role='student', uid='jdoe')
    existing.is_active = False
    db.commit()
    monkeypatch.setattr(
        auth_routes.ldap_auth,
        'ldap_login',
        lambda username, password: {'uid': username, 'email': None, 'first_name': None, 'last_name': None},
    )

    with pytest.raises(HTTPException) as exception_info:
        login(LoginRequest(email='jdoe', password='directory-secret'), db=db)

    assert exception_info.value.status_code == 401
    assert db.query(User).count() == 1


def test_login_rejects_when_both_checks_fail(db, make_user, monkeypatch) -> None:
    make_user(email='student@test.local', password='right')
    monkeypatch.setattr(auth_routes.ldap_auth, 'ldap_login', lambda *_: None)

    with pytest.raises(HTTPException) as exception_info:
        login(LoginRequest(email='student@test.local', password='wrong'), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid email or password.'


def test_register_creates_student_and_rejects_duplicate_email(db) -> None:
    request = RegisterRequest(email=' New@Test.local ', password='long-enough', first_name='New', last_name='User')

    response = register(request, db=db)

    assert response['user']['role'] == 'student'
    assert response['user']['email'] == 'new@test.local'
    with pytest.raises(HTTPException) as exception_info:
        register(request, db=db)
    assert exception_info.value.status_code == 400


def test_register_request_rejects_short_password() -> None:
    with pytest.raises(ValidationError):
        RegisterRequest(email='a@test.local', password='short', first_name='A', last_name='B')


def test_get_current_user_resolves_token_subject(db, make_user) -> None:
    user = make_user(role='student')
    token = jwt_handler.create_access_token(user.id)

    credentials = HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)

    assert get_current_user(credentials=credentials, db=db).id == user.id


@pytest.mark.parametrize(
    ('token', 'detail'),
    [
        ('not-a-token', 'Invalid token'),
        (jwt_handler.create_access_token('f' * 24), 'User not found'),
    ],
)
def test_get_current_user_rejects_bad_tokens(db, token: str, detail: str) -> None:
    credentials = HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=credentials, db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == detail


def test_get_current_user_rejects_inactive_user(db, make_user) -> None:
    user = make_user(role='teacher')
    token = jwt_handler.create_access_token(user.id)
    user.is_active = False
    db.commit()

    credentials = HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=credentials, db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'User is inactive'


def test_require_roles_rejects_other_roles(make_user) -> None:
    student = make_user(role='student')
    admin_only = require_roles('admin')

    with pytest.raises(HTTPException) as exception_info:
        admin_only(current_user=student)

    assert exception_info.value.status_code == 403
