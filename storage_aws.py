"""
storage_aws.py
DynamoDB-backed entity store with the same collection interface as MemStorage.

Notes:
- One table per collection, named <prefix><Collection> (e.g. BloodBankDonors),
  each keyed by a numeric 'id'.
- Ids come from an atomic ADD on the <prefix>Counters table keyed by 'name'.
- Any AWS failure is raised as StorageError; nothing falls back or retries.
"""

from datetime import date, datetime
from decimal import Decimal
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from storage import COLLECTIONS, Storage, StorageError

logger = logging.getLogger(__name__)

TABLE_NAMES = {
    'users': 'Users',
    'donors': 'Donors',
    'recipients': 'Recipients',
    'hospitals': 'Hospitals',
    'inventory': 'Inventory',
    'requests': 'BloodRequests',
    'drives': 'DonationDrives',
    'donations': 'Donations',
    'activities': 'Activities'
}

# Fields stored as ISO strings that are parsed back on read
DATE_FIELDS = {
    'donors': ('dob', 'last_donation'),
    'recipients': ('dob',),
    'inventory': ('donation_date', 'expiry_date'),
    'requests': ('required_by',),
    'drives': ('date',),
    'donations': ('date',)
}
DATETIME_FIELDS = ('created_at', 'date')


def to_dynamo(obj):
    """DynamoDB does not accept Python floats or dates; convert them"""
    if isinstance(obj, dict):
        return {k: to_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [to_dynamo(v) for v in obj]
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    return obj


def from_dynamo(obj):
    if isinstance(obj, dict):
        return {k: from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [from_dynamo(v) for v in obj]
    if isinstance(obj, Decimal):
        return int(obj) if obj == obj.to_integral_value() else float(obj)
    return obj


class DynamoCollection:
    """A collection stored in one DynamoDB table"""

    def __init__(self, name, table, counters, clock=datetime.now, stamp_created=True):
        self.name = name
        self.table = table
        self.counters = counters
        self.clock = clock
        self.stamp_created = stamp_created
        self.date_fields = DATE_FIELDS.get(name, ())

    def _load(self, item):
        record = from_dynamo(item)
        for field in self.date_fields:
            if isinstance(record.get(field), str):
                record[field] = date.fromisoformat(record[field])
        for field in DATETIME_FIELDS:
            if field in self.date_fields:
                continue
            if isinstance(record.get(field), str):
                record[field] = datetime.fromisoformat(record[field])
        return record

    def _scan(self, **kwargs):
        items = []
        try:
            resp = self.table.scan(**kwargs)
            items.extend(resp.get('Items', []))
            while 'LastEvaluatedKey' in resp:
                resp = self.table.scan(ExclusiveStartKey=resp['LastEvaluatedKey'], **kwargs)
                items.extend(resp.get('Items', []))
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Could not scan {self.name}: {exc}") from exc
        return items

    def _next_id(self):
        try:
            resp = self.counters.update_item(
                Key={'name': self.name},
                UpdateExpression='ADD current_id :one',
                ExpressionAttributeValues={':one': 1},
                ReturnValues='UPDATED_NEW'
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Could not allocate an id for {self.name}: {exc}") from exc
        return int(resp['Attributes']['current_id'])

    def list(self):
        return [self._load(item) for item in self._scan()]

    def get(self, item_id):
        try:
            resp = self.table.get_item(Key={'id': item_id})
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Could not read {self.name} {item_id}: {exc}") from exc
        item = resp.get('Item')
        return self._load(item) if item else None

    def find(self, **fields):
        for record in self.list():
            if all(record.get(key) == value for key, value in fields.items()):
                return record
        return None

    def count(self):
        items = 0
        try:
            resp = self.table.scan(Select='COUNT')
            items += resp.get('Count', 0)
            while 'LastEvaluatedKey' in resp:
                resp = self.table.scan(Select='COUNT', ExclusiveStartKey=resp['LastEvaluatedKey'])
                items += resp.get('Count', 0)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Could not count {self.name}: {exc}") from exc
        return items

    def create(self, data):
        record = dict(data)
        if self.stamp_created:
            record.setdefault('created_at', self.clock())
        record['id'] = self._next_id()
        try:
            self.table.put_item(Item=to_dynamo(record))
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Could not write {self.name}: {exc}") from exc
        return record

    def update(self, item_id, changes):
        changes = {k: v for k, v in changes.items() if k != 'id'}
        if not changes:
            return self.get(item_id)

        names = {}
        values = {}
        assignments = []
        for index, (key, value) in enumerate(changes.items()):
            names[f'#k{index}'] = key
            values[f':v{index}'] = to_dynamo(value)
            assignments.append(f'#k{index} = :v{index}')

        try:
            resp = self.table.update_item(
                Key={'id': item_id},
                UpdateExpression='SET ' + ', '.join(assignments),
                ConditionExpression='attribute_exists(id)',
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues='ALL_NEW'
            )
        except ClientError as exc:
            if exc.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
                return None
            raise StorageError(f"Could not update {self.name} {item_id}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Could not update {self.name} {item_id}: {exc}") from exc
        return self._load(resp['Attributes'])


class DynamoStorage(Storage):
    """Store backed by DynamoDB tables"""

    def __init__(self, clock=datetime.now, region='us-east-1', table_prefix='BloodBank', resource=None):
        self.clock = clock
        if resource is None:
            resource = boto3.resource('dynamodb', region_name=region)
        counters = resource.Table(f'{table_prefix}Counters')
        for name in COLLECTIONS:
            table = resource.Table(f'{table_prefix}{TABLE_NAMES[name]}')
            setattr(self, name, DynamoCollection(name, table, counters, clock,
                                                 stamp_created=(name != 'activities')))
        logger.info("Using DynamoDB tables with prefix %s in %s", table_prefix, region)
