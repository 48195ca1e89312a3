# /app/utils/metrics.py

from prometheus_client import Counter, Histogram, Gauge

# This file defines all Prometheus metrics used for application monitoring.
# Centralizing them here makes them easy to find and manage.

# Conversation Metrics
message_counter = Counter('flow_messages_total', 'Messages handled by the flow bot', ['direction', 'kind'])
transition_counter = Counter('flow_transitions_total', 'Flow engine transitions', ['outcome'])
active_sessions_gauge = Gauge('flow_active_sessions', 'Number of in-memory flow sessions')
response_time_histogram = Histogram('response_time_seconds', 'Response time in seconds', ['endpoint'])

# Integration Metrics
whatsapp_send_counter = Counter('whatsapp_send_total', 'Outbound WhatsApp sends', ['status'])
database_operations_counter = Counter('database_operations_total', 'Database operations', ['operation', 'status'])

# Security Metrics
webhook_signature_counter = Counter('webhook_signature_verifications_total', 'Webhook signature verifications', ['status'])
