"""
一个简单的运行时指标收集类，统计消息流量、LLM 调用、提醒处理结果等，供 /api/v1/metrics 查询。
进程内计数，重启清零。
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field


@dataclass
class RuntimeMetrics:
    msg_in_count: int = 0
    reply_sent_count: int = 0
    reply_failed_count: int = 0
    llm_call_count: int = 0
    llm_total_latency_ms: float = 0.0
    llm_error_count: int = 0
    dispatch_success_count: int = 0
    dispatch_failed_count: int = 0
    intake_states: Counter = field(default_factory=Counter)
    last_llm_call_at: float | None = None
    last_dispatch_at: float | None = None

    def record_llm_call(self, latency_ms: float, error: bool = False) -> None:
        self.llm_call_count += 1
        self.llm_total_latency_ms += max(0.0, latency_ms)
        self.last_llm_call_at = time.time()
        if error:
            self.llm_error_count += 1

    def record_msg_in(self) -> None:
        self.msg_in_count += 1

    def record_reply(self, delivered: bool) -> None:
        if delivered:
            self.reply_sent_count += 1
        else:
            self.reply_failed_count += 1

    def record_intake(self, state: str) -> None:
        self.intake_states[state] += 1

    def record_dispatch(self, success: bool) -> None:
        self.last_dispatch_at = time.time()
        if success:
            self.dispatch_success_count += 1
        else:
            self.dispatch_failed_count += 1

    def reset(self) -> None:
        self.__init__()

    def snapshot(self) -> dict:
        avg_latency_ms = 0.0
        if self.llm_call_count > 0:
            avg_latency_ms = self.llm_total_latency_ms / self.llm_call_count

        return {
            "msg_in_count": self.msg_in_count,
            "reply_sent_count": self.reply_sent_count,
            "reply_failed_count": self.reply_failed_count,
            "llm_call_count": self.llm_call_count,
            "llm_error_count": self.llm_error_count,
            "llm_total_latency_ms": round(self.llm_total_latency_ms, 2),
            "llm_avg_latency_ms": round(avg_latency_ms, 2),
            "intake_states": dict(self.intake_states),
            "dispatch_success_count": self.dispatch_success_count,
            "dispatch_failed_count": self.dispatch_failed_count,
            "last_llm_call_at_epoch": self.last_llm_call_at,
            "last_llm_call_at_utc": (
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.last_llm_call_at))
                if self.last_llm_call_at is not None
                else None
            ),
            "last_dispatch_at_epoch": self.last_dispatch_at,
        }


runtime_metrics = RuntimeMetrics()


__all__ = ["RuntimeMetrics", "runtime_metrics"]
