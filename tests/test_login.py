import pytest
from datetime import timedelta
from votesecure import db
from votesecure.authentication.login import LoginService, LoginState, MAX_LOGIN_ATTEMPTS, mask_email
from votesecure.authentication.password_change import PasswordChangeService
from votesecure.database.models import AccountStatus, PasswordReset, VoterActivityLog
from votesecure.errors import AuthError, DependencyError, LockoutError, ValidationError
from votesecure.security.token_manager import TokenManager, FACE_VERIFICATION_SCOPE, SESSION_SCOPE

from conftest import ADMIN_PASSWORD, FACE_BYTES, FACE_DATA_URL, VOTER_PASSWORD


@pytest.fixture
def login_service(app, collaborators):
    return LoginService(db.session, collaborators.face_matcher, collaborators.notifier,
                        audit_logger=collaborators.audit_logger,
                        upload_folder=app.config['UPLOAD_FOLDER'])


@pytest.fixture
def clock(freeze_time):
    return freeze_time(LoginService, PasswordChangeService)


def fail_password(service, voter, times):
    for _ in range(times):
        with pytest.raises(AuthError):
            service.login(voter.voter_id, 'wrong-password')


def test_successful_login_issues_session_token(login_service, make_voter, clock):
    voter = make_voter()
    outcome = login_service.login(voter.voter_id, VOTER_PASSWORD)

    assert outcome.state is LoginState.AUTHENTICATED
    body = outcome.to_dict()
    assert body['success'] is True
    assert body['user']['email'] == 'voter@example.com'
    claims = TokenManager().validate_token(body['token'])
    assert claims['sub'] == str(voter.id)
    assert claims['role'] == 'voter'
    assert claims['scope'] == SESSION_SCOPE
    assert voter.last_login == clock.now


def test_login_by_email_is_case_insensitive(login_service, make_voter, clock):
    make_voter(email='ann@ex.com')
    outcome = login_service.login('  ANN@Ex.com ', VOTER_PASSWORD)
    assert outcome.state is LoginState.AUTHENTICATED


def test_missing_fields(login_service):
    with pytest.raises(ValidationError):
        login_service.login('', 'secret')
    with pytest.raises(ValidationError):
        login_service.login('VS12345678', '')


def test_unknown_identifier_looks_like_wrong_password(login_service, make_voter, clock):
    voter = make_voter()
    with pytest.raises(AuthError) as unknown:
        login_service.login('VSNOBODY00', 'whatever')
    with pytest.raises(AuthError) as wrong:
        login_service.login(voter.voter_id, 'wrong-password')

    assert unknown.value.status_code == wrong.value.status_code == 401
    assert unknown.value.to_dict() == wrong.value.to_dict()
    assert wrong.value.payload['attempts_remaining'] == MAX_LOGIN_ATTEMPTS - 1


def test_attempts_remaining_counts_down(login_service, make_voter, clock):
    voter = make_voter()
    remaining = []
    for _ in range(4):
        with pytest.raises(AuthError) as excinfo:
            login_service.login(voter.voter_id, 'wrong-password')
        remaining.append(excinfo.value.payload['attempts_remaining'])
    assert remaining == [4, 3, 2, 1]
    assert voter.login_attempts == 4
    assert voter.account_locked_until is None


def test_fifth_failure_locks_for_thirty_minutes(login_service, make_voter, clock):
    voter = make_voter()
    fail_password(login_service, voter, 4)

    with pytest.raises(LockoutError) as excinfo:
        login_service.login(voter.voter_id, 'wrong-password')
    assert excinfo.value.status_code == 423
    assert excinfo.value.payload['attempts_remaining'] == 0
    assert voter.account_locked_until == clock.now + timedelta(minutes=30)
    assert voter.account_status == AccountStatus.LOCKED.value


def test_lock_holds_at_29_minutes_and_lifts_at_31(login_service, make_voter, clock):
    voter = make_voter()
    fail_password(login_service, voter, 4)
    with pytest.raises(LockoutError):
        login_service.login(voter.voter_id, 'wrong-password')

    clock.advance(minutes=29)
    with pytest.raises(LockoutError) as excinfo:
        login_service.login(voter.voter_id, VOTER_PASSWORD)
    assert excinfo.value.minutes_remaining == 1
    assert excinfo.value.to_dict()['locked'] is True
    assert voter.login_attempts == MAX_LOGIN_ATTEMPTS  # locked requests are not counted

    clock.advance(minutes=2)
    outcome = login_service.login(voter.voter_id, VOTER_PASSWORD)
    assert outcome.state is LoginState.AUTHENTICATED
    assert voter.login_attempts == 0
    assert voter.account_locked_until is None
    assert voter.account_status == AccountStatus.ACTIVE.value


def test_expired_lock_keeps_the_counter(login_service, make_voter, clock):
    voter = make_voter()
    fail_password(login_service, voter, 4)
    with pytest.raises(LockoutError):
        login_service.login(voter.voter_id, 'wrong-password')

    clock.advance(minutes=31)
    with pytest.raises(LockoutError) as excinfo:
        login_service.login(voter.voter_id, 'still-wrong')
    assert excinfo.value.payload['attempts_remaining'] == 0
    assert voter.login_attempts > MAX_LOGIN_ATTEMPTS
    assert voter.account_locked_until == clock.now + timedelta(minutes=30)
    assert voter.account_status == AccountStatus.LOCKED.value


def test_temp_password_requires_change(login_service, make_voter, clock):
    voter = make_voter(temp_password='0123456789abcdef', face_verified=False)
    outcome = login_service.login(voter.voter_id, '0123456789abcdef')

    assert outcome.state is LoginState.TEMP_PASSWORD_CHANGE_REQUIRED
    body = outcome.to_dict()
    assert body['requires_password_change'] is True
    assert TokenManager().validate_token(body['token'])['scope'] == FACE_VERIFICATION_SCOPE
    reset = db.session.query(PasswordReset).filter_by(user_id=voter.id).one()
    assert reset.expires_at == clock.now + timedelta(hours=1)
    assert reset.used is False
    assert reset.token != body['password_change_token']  # only the digest is stored


def test_reissued_reset_token_replaces_the_previous_one(login_service, make_voter, clock):
    voter = make_voter(temp_password='0123456789abcdef')
    first = login_service.login(voter.voter_id, '0123456789abcdef').data['password_change_token']
    second = login_service.login(voter.voter_id, '0123456789abcdef').data['password_change_token']

    assert first != second
    assert db.session.query(PasswordReset).filter_by(user_id=voter.id).count() == 1
    with pytest.raises(AuthError):
        PasswordChangeService(db.session).change_password(first, 'NewPassword1', 'NewPassword1')
    PasswordChangeService(db.session).change_password(second, 'NewPassword1', 'NewPassword1')


def test_face_verification_required_when_not_verified(login_service, make_voter, clock):
    voter = make_voter(face_verified=False)
    outcome = login_service.login(voter.voter_id, VOTER_PASSWORD)
    assert outcome.state is LoginState.FACE_VERIFICATION_REQUIRED
    assert outcome.to_dict()['requires_face_verification'] is True
    assert 'token' not in outcome.data


def test_face_match_completes_login(login_service, make_voter, collaborators, clock):
    voter = make_voter(face_verified=False)
    outcome = login_service.login(voter.voter_id, VOTER_PASSWORD, face_image=FACE_DATA_URL)

    assert outcome.state is LoginState.AUTHENTICATED
    assert voter.face_verified is True
    captured, reference = collaborators.face_matcher.calls[0]
    assert captured == FACE_BYTES
    assert reference == FACE_BYTES


def test_face_mismatch_counts_as_failure(login_service, make_voter, collaborators, clock):
    voter = make_voter(face_verified=False)
    collaborators.face_matcher.result = False

    with pytest.raises(AuthError) as excinfo:
        login_service.login(voter.voter_id, VOTER_PASSWORD, face_image=FACE_DATA_URL)
    assert excinfo.value.payload == {'requires_face_verification': True, 'attempts_remaining': 4}
    assert voter.login_attempts == 1
    assert voter.face_verified is False


def test_undecodable_face_is_not_counted(login_service, make_voter, clock):
    voter = make_voter(face_verified=False)
    with pytest.raises(ValidationError):
        login_service.login(voter.voter_id, VOTER_PASSWORD, face_image='data:image/jpeg;base64,@@@')
    assert voter.login_attempts == 0


def test_otp_is_sent_and_reused(login_service, make_voter, collaborators, clock):
    voter = make_voter(otp_required=True)
    outcome = login_service.login(voter.voter_id, VOTER_PASSWORD)

    assert outcome.state is LoginState.OTP_REQUIRED
    assert outcome.data['otp_sent_to'] == mask_email('voter@example.com')
    assert len(collaborators.notifier.otps) == 1
    email, code = collaborators.notifier.otps[0]
    assert email == 'voter@example.com'
    assert len(code) == 6 and code.isdigit()
    assert voter.otp_expiry == clock.now + timedelta(minutes=10)

    clock.advance(minutes=5)
    login_service.login(voter.voter_id, VOTER_PASSWORD)
    assert len(collaborators.notifier.otps) == 1
    assert voter.otp == code

    outcome = login_service.login(voter.voter_id, VOTER_PASSWORD, otp=code)
    assert outcome.state is LoginState.AUTHENTICATED
    assert voter.otp is None and voter.otp_expiry is None


def test_expired_otp_is_rejected_and_regenerated(login_service, make_voter, collaborators, clock):
    voter = make_voter(otp_required=True)
    login_service.login(voter.voter_id, VOTER_PASSWORD)
    _, code = collaborators.notifier.otps[0]

    clock.advance(minutes=11)
    with pytest.raises(AuthError) as excinfo:
        login_service.login(voter.voter_id, VOTER_PASSWORD, otp=code)
    assert excinfo.value.payload['requires_otp'] is True
    assert voter.login_attempts == 1

    login_service.login(voter.voter_id, VOTER_PASSWORD)
    assert len(collaborators.notifier.otps) == 2


def test_otp_delivery_failure_is_dependency_error(login_service, make_voter, collaborators, clock):
    voter = make_voter(otp_required=True)
    collaborators.notifier.deliver = False

    with pytest.raises(DependencyError):
        login_service.login(voter.voter_id, VOTER_PASSWORD)
    assert voter.otp is None
    assert voter.otp_expiry is None


def test_failures_across_stages_share_one_counter(login_service, make_voter, collaborators, clock):
    voter = make_voter(otp_required=True, face_verified=False)
    fail_password(login_service, voter, 2)

    collaborators.face_matcher.result = False
    for _ in range(2):
        with pytest.raises(AuthError):
            login_service.login(voter.voter_id, VOTER_PASSWORD, face_image=FACE_DATA_URL)

    collaborators.face_matcher.result = True
    with pytest.raises(LockoutError):
        login_service.login(voter.voter_id, VOTER_PASSWORD, face_image=FACE_DATA_URL, otp='000000')
    assert voter.account_locked_until == clock.now + timedelta(minutes=30)


def test_admin_skips_face_but_needs_otp(login_service, make_admin, collaborators, clock):
    admin = make_admin()
    outcome = login_service.login('admin@example.com', ADMIN_PASSWORD)
    assert outcome.state is LoginState.OTP_REQUIRED
    assert collaborators.face_matcher.calls == []

    _, code = collaborators.notifier.otps[0]
    outcome = login_service.verify_otp('admin@example.com', code)
    assert outcome.state is LoginState.AUTHENTICATED
    assert TokenManager().validate_token(outcome.data['token'])['role'] == 'admin'
    assert admin.login_attempts == 0


def test_verify_otp_wrong_code(login_service, make_voter, clock):
    voter = make_voter(otp_required=True)
    login_service.login(voter.voter_id, VOTER_PASSWORD)
    with pytest.raises(AuthError) as excinfo:
        login_service.verify_otp(voter.voter_id, '999999x')
    assert excinfo.value.payload['attempts_remaining'] == 4


def test_verify_otp_unknown_identifier_looks_like_wrong_code(login_service, make_voter, clock):
    voter = make_voter(otp_required=True)
    login_service.login(voter.voter_id, VOTER_PASSWORD)
    with pytest.raises(AuthError) as wrong:
        login_service.verify_otp(voter.voter_id, '999999x')
    with pytest.raises(AuthError) as unknown:
        login_service.verify_otp('VSNOBODY00', '123456')

    assert unknown.value.status_code == wrong.value.status_code == 401
    assert unknown.value.to_dict() == wrong.value.to_dict() == {
        'success': False,
        'message': 'Invalid or expired OTP. 4 attempts remaining.',
        'requires_otp': True,
        'attempts_remaining': 4,
    }


def test_verify_face_reports_pending_password_change(login_service, make_voter, clock):
    voter = make_voter(temp_password='0123456789abcdef', face_verified=False)
    result = login_service.verify_face(voter.id, FACE_DATA_URL)
    assert result['success'] is True
    assert result['requires_password_change'] is True
    assert voter.face_verified is True


def test_suspended_account_cannot_log_in(login_service, make_voter, clock):
    voter = make_voter()
    voter.account_status = AccountStatus.SUSPENDED.value
    db.session.commit()
    with pytest.raises(AuthError) as excinfo:
        login_service.login(voter.voter_id, VOTER_PASSWORD)
    assert excinfo.value.status_code == 403


def test_login_activity_is_recorded(login_service, make_voter, clock):
    voter = make_voter()
    fail_password(login_service, voter, 1)
    login_service.login(voter.voter_id, VOTER_PASSWORD)

    rows = (db.session.query(VoterActivityLog)
            .filter_by(user_id=voter.id, activity_type='login')
            .order_by(VoterActivityLog.id)
            .all())
    assert [row.status for row in rows] == ['failed', 'success']


def test_mask_email():
    assert mask_email('voter@example.com') == 'vo*er@example.com'
    assert mask_email('ann@ex.com') == 'a**@ex.com'
