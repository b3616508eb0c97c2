#!/usr/bin/env python3
"""
CloudFormation capabilities: stack updates, stability waits, DynamoDB index
readiness and template existence checks through boto3.
"""

import logging
import threading

from botocore.exceptions import ClientError

from .base import StackCapabilities
from .events import StackEventMonitor
from ..deployment.errors import ContractViolation, StackNotDeployable
from ..deployment.progress import ProgressObserver
from ..storage.s3 import S3Storage

logger = logging.getLogger(__name__)

UNDEPLOYABLE_STATUSES = ('ROLLBACK_COMPLETE', 'DELETE_COMPLETE')
NO_UPDATES_MESSAGE = 'No updates are to be performed'


class CloudFormationCapabilities(StackCapabilities):
    """
    Stack operations against live AWS APIs.

    Clients are created from one boto3 session and cached per
    (service, region) so concurrent readiness polls share them. An update
    CloudFormation rejects as having no changes counts as applied, and the
    following await_stable returns without waiting.
    """

    def __init__(self, session, region, observer=None, options=None, rate_limiter=None):
        super().__init__(
            rate_limiter=rate_limiter,
            poll_interval=options.throttle_delay if options else 1.0,
            readiness_timeout=options.readiness_timeout if options else None,
        )
        self.session = session
        self.region = region
        self.observer = observer or ProgressObserver()
        self.options = options
        self._clients = {}
        self._unchanged = set()
        self._lock = threading.Lock()

    def _client(self, service, region=None):
        key = (service, region or self.region)
        with self._lock:
            if key not in self._clients:
                self._clients[key] = self.session.client(service, region_name=key[1])
            return self._clients[key]

    def ensure_stack(self, stack_name, region=None):
        """
        Ensure that the stack is present and can be deployed.
        Returns the current stack status.
        """
        try:
            response = self._client('cloudformation', region).describe_stacks(StackName=stack_name)
        except ClientError as e:
            if 'does not exist' in e.response['Error'].get('Message', ''):
                raise StackNotDeployable(stack_name, 'DOES_NOT_EXIST') from e
            raise

        status = response['Stacks'][0]['StackStatus']
        if not status.endswith('_COMPLETE') or status in UNDEPLOYABLE_STATUSES:
            raise StackNotDeployable(stack_name, status)
        return status

    def submit_update(self, operation):
        if not operation.stack_name:
            raise ContractViolation("stack name should be passed to submit_update")
        if not operation.template_url:
            raise ContractViolation("template url must be passed to submit_update")

        self.ensure_stack(operation.stack_name, operation.region)
        request = {
            'StackName': operation.stack_name,
            'TemplateURL': operation.template_url,
            'Parameters': [
                {'ParameterKey': key, 'ParameterValue': value}
                for key, value in operation.parameters.items()
            ],
            'Capabilities': list(operation.capabilities),
        }
        if operation.client_request_token:
            request['ClientRequestToken'] = operation.client_request_token

        logger.info("Updating stack %s with %s", operation.stack_name, operation.template_url)
        try:
            return self._client('cloudformation', operation.region).update_stack(**request)
        except ClientError as e:
            error = e.response['Error']
            if error.get('Code') != 'ValidationError' or NO_UPDATES_MESSAGE not in error.get('Message', ''):
                raise
        # The stack already runs this template
        logger.info("Stack %s has no changes to deploy", operation.stack_name)
        with self._lock:
            self._unchanged.add((operation.stack_name, operation.region or self.region))
        return None

    def await_stable(self, operation):
        if not operation.stack_name:
            raise ContractViolation("stack name should be passed to await_stable")

        key = (operation.stack_name, operation.region or self.region)
        with self._lock:
            unchanged = key in self._unchanged
            self._unchanged.discard(key)
        if unchanged:
            logger.debug("Stack %s was not updated, nothing to wait for", operation.stack_name)
            return

        waiter = self._client('cloudformation', operation.region).get_waiter('stack_update_complete')
        config = {}
        if self.options:
            config = {
                'Delay': self.options.stability_poll_delay,
                'MaxAttempts': self.options.stability_max_attempts,
            }
        logger.info("Waiting for stack %s to finish updating", operation.stack_name)
        waiter.wait(StackName=operation.stack_name, WaiterConfig=config)

    def is_table_ready(self, table_name, region):
        if not table_name:
            raise ContractViolation("table name should be passed to is_table_ready")
        response = self._client('dynamodb', region).describe_table(TableName=table_name)
        indexes = response['Table'].get('GlobalSecondaryIndexes') or []
        return all(index.get('IndexStatus') == 'ACTIVE' for index in indexes)

    def template_exists(self, bucket, template_path):
        storage = S3Storage({'bucket_name': bucket}, client=self._client('s3'))
        return storage.exists(template_path)

    def start_event_stream(self, operation):
        monitor = StackEventMonitor(
            self._client('cloudformation', operation.region),
            operation.stack_name,
            self.observer,
            interval=self.options.event_polling_delay if self.options else 1.0,
        )
        monitor.start()
        return monitor.stop
