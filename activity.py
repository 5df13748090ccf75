"""
Activity recorder
Audit trail behind the dashboard's recent activity view
"""

import logging

logger = logging.getLogger(__name__)

# Which collection an activity's related_id points into
RELATED_COLLECTIONS = {
    'Blood Donation': ('donor', 'donors'),
    'Blood Request': ('recipient', 'recipients'),
    'Emergency Request': ('hospital', 'hospitals')
}


class ActivityRecorder:
    """Appends activity entries to a store and reads them back newest first"""

    def __init__(self, storage, clock):
        self.storage = storage
        self.clock = clock

    def record(self, activity_type, description, user_id=None, related_id=None, date=None):
        """Append one entry; store failures propagate to the caller"""
        entry = self.storage.activities.create({
            'activity_type': activity_type,
            'description': description,
            'user_id': user_id,
            'related_id': related_id,
            'date': date or self.clock()
        })
        logger.info("[%s] %s", activity_type, description)
        return entry

    def recent(self, limit=None):
        activities = sorted(self.storage.activities.list(), key=lambda a: a['date'], reverse=True)
        return activities[:limit] if limit else activities

    def recent_with_details(self, limit=None):
        """
        Recent entries with the related donor, recipient or hospital attached.
        Dangling related ids resolve to None.
        """
        detailed = []
        for activity in self.recent(limit):
            details = {'donor': None, 'recipient': None, 'hospital': None}
            related = RELATED_COLLECTIONS.get(activity['activity_type'])
            if related and activity.get('related_id'):
                key, collection = related
                details[key] = getattr(self.storage, collection).get(activity['related_id'])
            detailed.append({**activity, **details})
        return detailed
