# votesecure/routes.py

# JSON API for the SPA: admin voter management, multi-step login and voting.
# Handlers only translate HTTP to service calls; errors surface as
# VoteSecureError and are rendered by the app-level error handler.

from flask import Blueprint, Response, current_app, g, jsonify, request
from votesecure import db, limiter
from votesecure.admin.voter_export import EXPORT_FILENAME, export_voters_csv
from votesecure.admin.voter_list import VoterListImporter
from votesecure.admin.voter_maintenance import VoterMaintenanceService
from votesecure.authentication.login import LoginService
from votesecure.authentication.password_change import PasswordChangeService
from votesecure.authentication.rbac import Permission, require_face_scope, require_permission
from votesecure.errors import ValidationError
from votesecure.registration.voter_registration import VoterRegistrationService
from votesecure.voting.vote_service import VotingService

api = Blueprint('api', __name__, url_prefix='/api')


def _collaborators():
    return current_app.extensions['votesecure']


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _login_rate_limit():
    return current_app.config.get('LOGIN_RATE_LIMIT', '5/minute')


def _login_service():
    collaborators = _collaborators()
    return LoginService(db.session, collaborators.face_matcher, collaborators.notifier,
                        audit_logger=collaborators.audit_logger,
                        upload_folder=current_app.config['UPLOAD_FOLDER'])


# Authentication

@api.route('/auth/login', methods=['POST'])
@limiter.limit(_login_rate_limit)
def login():
    data = _json_body()
    identifier = data.get('voter_id') or data.get('email') or ''
    outcome = _login_service().login(identifier, data.get('password') or '',
                                     face_image=data.get('face_image'), otp=data.get('otp'))
    return jsonify(outcome.to_dict())


@api.route('/auth/verify-otp', methods=['POST'])
@limiter.limit(_login_rate_limit)
def verify_otp():
    data = _json_body()
    identifier = data.get('voter_id') or data.get('email') or ''
    outcome = _login_service().verify_otp(identifier, data.get('otp') or '')
    return jsonify(outcome.to_dict())


@api.route('/auth/verify-face', methods=['POST'])
@require_face_scope
def verify_face():
    data = _json_body()
    result = _login_service().verify_face(g.current_user.id, data.get('face_image'))
    return jsonify(result)


@api.route('/auth/change-password', methods=['POST'])
def change_password():
    data = _json_body()
    service = PasswordChangeService(db.session, _collaborators().audit_logger)
    result = service.change_password(data.get('token'), data.get('new_password'),
                                     data.get('confirm_password'))
    return jsonify({'success': True, 'message': 'Password changed successfully', **result})


# Voting

@api.route('/votes/cast', methods=['POST'])
@require_permission(Permission.CAST_VOTE)
def cast_vote():
    data = _json_body()
    service = VotingService(db.session, _collaborators().ledger, _collaborators().audit_logger)
    return jsonify(service.cast_vote(g.current_user, data.get('election_id'), data.get('candidate_id')))


@api.route('/votes/status', methods=['GET'])
@require_permission(Permission.VIEW_OWN_STATUS)
def vote_status():
    service = VotingService(db.session, _collaborators().ledger, _collaborators().audit_logger)
    return jsonify(service.vote_status(g.current_user, request.args.get('election_id')))


# Admin

@api.route('/admin/register-voter', methods=['POST'])
@require_permission(Permission.REGISTER_VOTERS)
def register_voter():
    data = _json_body()
    collaborators = _collaborators()
    service = VoterRegistrationService(
        db.session, collaborators.notifier,
        upload_folder=current_app.config['UPLOAD_FOLDER'],
        csv_export_folder=current_app.config['CSV_EXPORT_FOLDER'],
        login_url=current_app.config['FRONTEND_LOGIN_URL'],
        audit_logger=collaborators.audit_logger,
    )
    result = service.register_voter(g.current_user, data.get('name'), data.get('email'),
                                    data.get('date_of_birth'), data.get('face_image'),
                                    data.get('election_id'))
    message = 'Voter registered successfully.'
    if result['email_sent']:
        message += ' Login credentials have been sent to their email.'
    return jsonify({'success': True, 'message': message, 'data': result})


@api.route('/admin/delete-voter', methods=['POST'])
@require_permission(Permission.DELETE_VOTERS)
def delete_voter():
    data = _json_body()
    service = VoterMaintenanceService(db.session, current_app.config['UPLOAD_FOLDER'],
                                      _collaborators().audit_logger)
    return jsonify(service.delete_voter(data.get('voter_id'), admin=g.current_user))


@api.route('/admin/delete-all-voters', methods=['POST'])
@require_permission(Permission.DELETE_VOTERS)
def delete_all_voters():
    data = _json_body()
    service = VoterMaintenanceService(db.session, current_app.config['UPLOAD_FOLDER'],
                                      _collaborators().audit_logger)
    return jsonify(service.delete_all_voters(data.get('confirm'), admin=g.current_user))


@api.route('/admin/export-voters-csv', methods=['GET'])
@require_permission(Permission.EXPORT_VOTERS)
def export_voters():
    return Response(
        export_voters_csv(db.session),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{EXPORT_FILENAME}"'},
    )


@api.route('/admin/process-voter-list', methods=['POST'])
@require_permission(Permission.IMPORT_VOTER_LIST)
def process_voter_list():
    upload = request.files.get('voter_list') or request.files.get('file')
    if upload is None or not upload.filename:
        raise ValidationError("No file uploaded or upload error")
    replace_existing = str(request.form.get('replace_existing', '')).strip().lower() in ('true', '1')

    report = VoterListImporter(db.session).process_voter_list(
        request.form.get('election_id'), upload.filename, upload.read(), replace_existing)
    return jsonify({
        'success': True,
        'message': f"Processed {report.total} rows: {report.inserted} inserted, "
                   f"{report.updated} updated, {report.skipped} skipped",
        'data': report.to_dict(),
    })
