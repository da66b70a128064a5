"""
Lambda function to poll LMS notifications for every subscribed user.
Triggered by EventBridge on the notification poll interval.
"""

import json
import os
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Tuple

import boto3
from botocore.exceptions import ClientError

from lms_notification_agent.api_client import BackendClient
from lms_notification_agent.config import BackendConfig
from lms_notification_agent.engine import NotificationEngine
from lms_notification_agent.store import DynamoDBStore

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

BACKEND_BASE_URL = os.environ.get('BACKEND_BASE_URL', 'http://localhost:8080/api')
FEED_CAP = int(os.environ.get('FEED_CAP', '40'))
FETCH_TIMEOUT_SECONDS = float(os.environ.get('FETCH_TIMEOUT_SECONDS', '10'))


def _tables() -> Tuple[Any, Any]:
    """Subscriptions table and notification state table."""
    dynamodb = boto3.resource('dynamodb')
    subscriptions = dynamodb.Table(os.environ.get('DYNAMODB_TABLE_SUBSCRIPTIONS', 'notification_subscriptions'))
    state = dynamodb.Table(os.environ.get('DYNAMODB_TABLE_NOTIFICATION_STATE', 'notification_state'))
    return subscriptions, state


def poll_subscription(subscription: Dict[str, Any], store: DynamoDBStore) -> Dict[str, Any]:
    """Run one poll cycle for a single subscribed user."""
    client = BackendClient(BackendConfig(
        base_url=BACKEND_BASE_URL,
        auth_token=subscription['auth_token'],
        fetch_timeout_seconds=FETCH_TIMEOUT_SECONDS,
    ))
    engine = NotificationEngine(
        client=client,
        store=store,
        user_id=subscription['user_id'],
        role=subscription['role'],
        feed_cap=FEED_CAP,
    )
    result = engine.run_cycle(trigger='lambda')
    return {
        'new_notifications': len(result.new_records),
        'failed_resources': result.failed_resources,
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Poll notifications for all active subscriptions.
    Triggered by EventBridge schedule.
    """
    try:
        logger.info("Starting notification polling...")
        subscriptions_table, state_table = _tables()
        store = DynamoDBStore(state_table)

        response = subscriptions_table.scan(
            FilterExpression='#s = :status',
            ExpressionAttributeNames={'#s': 'status'},
            ExpressionAttributeValues={':status': 'active'}
        )
        subscriptions = response.get('Items', [])
        logger.info(f"Found {len(subscriptions)} active subscriptions")

        total_new = 0
        failed_users = []
        for subscription in subscriptions:
            user_id = subscription.get('user_id')
            try:
                summary = poll_subscription(subscription, store)
                total_new += summary['new_notifications']
                subscriptions_table.update_item(
                    Key={'user_id': user_id},
                    UpdateExpression='SET last_poll_at = :now, error_count = :zero, last_error = :none',
                    ExpressionAttributeValues={
                        ':now': datetime.now(timezone.utc).isoformat(),
                        ':zero': 0,
                        ':none': None,
                    }
                )
            except Exception as e:
                logger.error(f"Error polling notifications for {user_id}: {e}", exc_info=True)
                failed_users.append(user_id)
                try:
                    subscriptions_table.update_item(
                        Key={'user_id': user_id},
                        UpdateExpression='SET last_error = :err ADD error_count :one',
                        ExpressionAttributeValues={':err': str(e), ':one': 1}
                    )
                except ClientError as update_error:
                    logger.error(f"Could not record poll error for {user_id}: {update_error}")
                continue

        logger.info(f"Polling complete. Total new notifications: {total_new}")

        return {
            'statusCode': 200,
            'body': json.dumps({
                'message': 'Polling complete',
                'total_new_notifications': total_new,
                'failed_users': failed_users,
            })
        }

    except Exception as e:
        logger.error(f"Error in poll-notifications: {str(e)}", exc_info=True)
        return {
            'statusCode': 500,
            'body': json.dumps({'message': 'Polling failed'})
        }
