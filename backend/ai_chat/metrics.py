from __future__ import annotations

from prometheus_client import Counter, Histogram

# Chat pipeline metrics
chat_requests_total = Counter(
    "chat_requests_total",
    "Chat requests by terminal outcome",
    ["outcome"],
)

chat_request_duration = Histogram(
    "chat_request_duration_seconds",
    "Total chat pipeline duration",
    buckets=(0.5, 1, 2, 5, 10, 30, 60),
)

retrieval_duration = Histogram(
    "chat_retrieval_duration_seconds",
    "Knowledge retrieval duration",
    buckets=(0.1, 0.5, 1, 2, 5, 10),
)

generation_duration = Histogram(
    "chat_generation_duration_seconds",
    "Upstream LLM call duration",
    buckets=(0.5, 1, 2, 5, 10, 30, 60),
)

# Degradations and failures
retrieval_degraded_total = Counter(
    "chat_retrieval_degraded_total",
    "Requests answered without knowledge context",
    ["reason"],
)

quota_check_failures_total = Counter(
    "chat_quota_check_failures_total",
    "Quota reads that failed open",
)

quota_rejections_total = Counter(
    "chat_quota_rejections_total",
    "Requests rejected by the daily quota",
)

upstream_failures_total = Counter(
    "chat_upstream_failures_total",
    "Failed LLM provider calls",
    ["reason"],
)

usage_record_failures_total = Counter(
    "chat_usage_record_failures_total",
    "Usage events that could not be written",
)

llm_tokens_used_total = Counter(
    "chat_llm_tokens_used_total",
    "Input plus output tokens reported by the LLM provider",
)
