# votesecure/admin/voter_export.py

import csv
import io
from votesecure.database.models import Election, EligibleVoter, User

EXPORT_FILENAME = 'voters_by_election.csv'
EXPORT_HEADER = ['election_id', 'election_title', 'name', 'email', 'date_of_birth']


def export_voters_csv(session):
    """Every eligible voter, joined to its account by e-mail, as CSV text."""
    rows = (session.query(EligibleVoter.election_id, Election.title, EligibleVoter.name,
                          EligibleVoter.email, User.date_of_birth)
            .join(Election, Election.id == EligibleVoter.election_id)
            .outerjoin(User, User.email == EligibleVoter.email)
            .order_by(EligibleVoter.election_id, EligibleVoter.name)
            .all())

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADER)
    for election_id, title, name, email, date_of_birth in rows:
        writer.writerow([election_id, title, name, email,
                         date_of_birth.isoformat() if date_of_birth else ''])
    return buffer.getvalue()
