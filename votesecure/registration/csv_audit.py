# votesecure/registration/csv_audit.py

import csv
import logging
import os
import re

# One append-only CSV per election recording every manual registration

logger = logging.getLogger(__name__)

CSV_HEADER = ['Name', 'Email', 'DOB', 'Registration Timestamp']


def election_csv_filename(election_id, election_title=''):
    """``election_5_college_election_2025_voters.csv`` or ``election_5_voters.csv``."""
    base = str(max(int(election_id), 0))
    slug = re.sub(r'[^a-z0-9]+', '_', (election_title or '').strip().lower()).strip('_')
    if slug:
        base += '_' + slug
    return f'election_{base}_voters.csv'


class RegistrationCsvWriter:
    def __init__(self, export_folder):
        self.export_folder = export_folder

    def append(self, election, name, email, date_of_birth, registered_at):
        """Append one row, writing the header first when the file is new.

        Returns ``{written, path, created}``; on failure ``{written: False, error}``.
        Never raises.
        """
        path = os.path.join(self.export_folder, election_csv_filename(election.id, election.title))
        try:
            os.makedirs(self.export_folder, exist_ok=True)
            is_new = not os.path.exists(path)
            with open(path, 'a', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                if is_new:
                    writer.writerow(CSV_HEADER)
                writer.writerow([name, email, date_of_birth.isoformat(),
                                 registered_at.strftime('%Y-%m-%d %H:%M:%S')])
        except OSError as e:
            logger.error("CSV write failed for election %s: %s", election.id, e)
            return {'written': False, 'error': str(e)}
        return {'written': True, 'path': path, 'created': is_new}
