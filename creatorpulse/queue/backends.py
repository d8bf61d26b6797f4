"""Queue storage backends.

Each queue is a set of sorted sets, one per job state, plus a hash that maps
job keys to the id of the in-flight job holding them:

    {prefix}:{queue}:waiting    score = enqueue time (FIFO)
    {prefix}:{queue}:delayed    score = time the job becomes available
    {prefix}:{queue}:active     score = lease expiry
    {prefix}:{queue}:completed  score = finish time
    {prefix}:{queue}:failed     score = finish time
    {prefix}:{queue}:keys       hash job key -> job id
    {prefix}:{queue}:job:{id}   job JSON

Dedup relies on the keys hash; a key is released when its job
completes, fails terminally or is removed.
"""

import asyncio
from typing import Optional, Protocol

import redis.asyncio as redis
import structlog

from creatorpulse.queue.job import JobState, QueueJob

logger = structlog.get_logger(__name__)

TERMINAL_STATES = (JobState.COMPLETED, JobState.FAILED)


class QueueBackend(Protocol):
    async def add(self, job: QueueJob, score: float) -> tuple[str, bool]:
        """Store a job unless its key is held. Returns (job_id, duplicate)."""
        ...

    async def claim(self, queue: str, now: float, lease_until: float) -> Optional[QueueJob]:
        """Promote due delayed jobs, then move the oldest waiting job to active.

        The claimed job has attempts_made incremented.
        """
        ...

    async def move(
        self, job: QueueJob, source: JobState, target: JobState, score: float
    ) -> bool:
        """Move a job between states. False if it was no longer in source."""
        ...

    async def get(self, queue: str, job_id: str) -> Optional[QueueJob]: ...

    async def key_owner(self, queue: str, key: str) -> Optional[str]: ...

    async def list_jobs(
        self,
        queue: str,
        state: JobState,
        max_score: Optional[float] = None,
    ) -> list[QueueJob]:
        """Jobs in a state ordered by score, optionally only up to max_score."""
        ...

    async def remove(self, queue: str, state: JobState, job_ids: list[str]) -> int: ...

    async def counts(self, queue: str) -> dict[str, int]: ...

    async def obliterate(self, queue: str) -> int: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


# =============================================================================
# Redis
# =============================================================================

# Claim the dedup key and store the job, unless a live job already holds it.
# KEYS: keys hash, state set, job JSON. ARGV: job key, job id, job JSON,
# score, job JSON key prefix.
_ADD_SCRIPT = """
local owner = redis.call('HGET', KEYS[1], ARGV[1])
if owner and redis.call('EXISTS', ARGV[5] .. owner) == 1 then
  return {owner, 1}
end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[2])
redis.call('SET', KEYS[3], ARGV[3])
redis.call('ZADD', KEYS[2], ARGV[4], ARGV[2])
return {ARGV[2], 0}
"""

# Move a job between state sets and rewrite its JSON. With an expected JSON
# the move only happens if the stored job is unchanged since it was read.
# KEYS: source set, target set, job JSON, keys hash. ARGV: job id, job JSON,
# score, release key ("1"/"0"), job key, expected JSON ("" to skip).
_MOVE_SCRIPT = """
if ARGV[6] ~= '' and redis.call('GET', KEYS[3]) ~= ARGV[6] then
  return 0
end
if redis.call('ZREM', KEYS[1], ARGV[1]) == 0 then
  return 0
end
redis.call('ZADD', KEYS[2], ARGV[3], ARGV[1])
redis.call('SET', KEYS[3], ARGV[2])
if ARGV[4] == '1' and redis.call('HGET', KEYS[4], ARGV[5]) == ARGV[1] then
  redis.call('HDEL', KEYS[4], ARGV[5])
end
return 1
"""

# Drop a job from a state set, delete its JSON and release its key.
# KEYS: state set, job JSON, keys hash. ARGV: job id, job key ("" if unknown).
_REMOVE_SCRIPT = """
if redis.call('ZREM', KEYS[1], ARGV[1]) == 0 then
  return 0
end
redis.call('DEL', KEYS[2])
if ARGV[2] ~= '' and redis.call('HGET', KEYS[3], ARGV[2]) == ARGV[1] then
  redis.call('HDEL', KEYS[3], ARGV[2])
end
return 1
"""


class RedisQueueBackend:
    """
    Queue backend shared by every worker process through Redis.

    Every write that touches more than one key runs as a Lua script, so
    concurrent producers and workers never see a half-written job.

    Args:
        redis_url: Redis connection URL
        key_prefix: Prefix for Redis keys
        client: Already connected client, used instead of redis_url
    """

    def __init__(
        self,
        redis_url: str = "",
        key_prefix: str = "creatorpulse:queue",
        client: Optional[redis.Redis] = None,
    ):
        self._redis_url = redis_url
        self._key_prefix = key_prefix
        self._client: Optional[redis.Redis] = None
        if client is not None:
            self._bind(client)

    def _bind(self, client: redis.Redis) -> None:
        self._client = client
        self._add_script = client.register_script(_ADD_SCRIPT)
        self._move_script = client.register_script(_MOVE_SCRIPT)
        self._remove_script = client.register_script(_REMOVE_SCRIPT)

    async def connect(self) -> None:
        """Establish Redis connection. Failures propagate."""
        if self._client is not None:
            return

        client = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        await client.ping()
        self._bind(client)
        logger.info("redis_queue_backend_connected")

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Queue backend not connected. Call connect() first.")
        return self._client

    def _state_key(self, queue: str, state: JobState) -> str:
        return f"{self._key_prefix}:{queue}:{state.value}"

    def _keys_key(self, queue: str) -> str:
        return f"{self._key_prefix}:{queue}:keys"

    def _job_key(self, queue: str, job_id: str) -> str:
        return f"{self._key_prefix}:{queue}:job:{job_id}"

    async def add(self, job: QueueJob, score: float) -> tuple[str, bool]:
        job_id, duplicate = await self._add_script(
            keys=[
                self._keys_key(job.queue),
                self._state_key(job.queue, job.state),
                self._job_key(job.queue, job.id),
            ],
            args=[job.key, job.id, job.model_dump_json(), score, self._job_key(job.queue, "")],
        )
        return job_id, bool(int(duplicate))

    async def _move(
        self,
        job: QueueJob,
        source: JobState,
        target: JobState,
        score: float,
        expected: str = "",
    ) -> bool:
        moved = await self._move_script(
            keys=[
                self._state_key(job.queue, source),
                self._state_key(job.queue, target),
                self._job_key(job.queue, job.id),
                self._keys_key(job.queue),
            ],
            args=[
                job.id,
                job.model_dump_json(),
                score,
                "1" if target in TERMINAL_STATES else "0",
                job.key,
                expected,
            ],
        )
        return bool(int(moved))

    async def _load(self, queue: str, job_id: str) -> tuple[Optional[QueueJob], Optional[str]]:
        data = await self.client.get(self._job_key(queue, job_id))
        if data is None:
            return None, None
        return QueueJob.model_validate_json(data), data

    async def _promote_delayed(self, queue: str, now: float) -> None:
        delayed_key = self._state_key(queue, JobState.DELAYED)
        for job_id in await self.client.zrangebyscore(delayed_key, 0, now):
            job, raw = await self._load(queue, job_id)
            if job is None:
                await self.client.zrem(delayed_key, job_id)
                continue
            # Losing the race means another process promoted it
            job.state = JobState.WAITING
            await self._move(job, JobState.DELAYED, JobState.WAITING, now, expected=raw)

    async def claim(self, queue: str, now: float, lease_until: float) -> Optional[QueueJob]:
        await self._promote_delayed(queue, now)
        waiting_key = self._state_key(queue, JobState.WAITING)

        while True:
            head = await self.client.zrange(waiting_key, 0, 0)
            if not head:
                return None
            job_id = head[0]
            job, raw = await self._load(queue, job_id)
            if job is None:
                logger.warning("queue_job_state_missing", queue=queue, job_id=job_id)
                await self.client.zrem(waiting_key, job_id)
                continue

            job.state = JobState.ACTIVE
            job.attempts_made += 1
            if await self._move(job, JobState.WAITING, JobState.ACTIVE, lease_until, expected=raw):
                return job

    async def move(
        self, job: QueueJob, source: JobState, target: JobState, score: float
    ) -> bool:
        previous = job.state
        job.state = target
        moved = await self._move(job, source, target, score)
        if not moved:
            job.state = previous
        return moved

    async def get(self, queue: str, job_id: str) -> Optional[QueueJob]:
        job, _ = await self._load(queue, job_id)
        return job

    async def key_owner(self, queue: str, key: str) -> Optional[str]:
        return await self.client.hget(self._keys_key(queue), key)

    async def list_jobs(
        self,
        queue: str,
        state: JobState,
        max_score: Optional[float] = None,
    ) -> list[QueueJob]:
        state_key = self._state_key(queue, state)
        if max_score is None:
            job_ids = await self.client.zrange(state_key, 0, -1)
        else:
            job_ids = await self.client.zrangebyscore(state_key, "-inf", max_score)
        jobs = []
        for job_id in job_ids:
            job = await self.get(queue, job_id)
            if job is not None:
                jobs.append(job)
        return jobs

    async def remove(self, queue: str, state: JobState, job_ids: list[str]) -> int:
        removed = 0
        for job_id in job_ids:
            job = await self.get(queue, job_id)
            removed += int(
                await self._remove_script(
                    keys=[
                        self._state_key(queue, state),
                        self._job_key(queue, job_id),
                        self._keys_key(queue),
                    ],
                    args=[job_id, job.key if job is not None else ""],
                )
            )
        return removed

    async def counts(self, queue: str) -> dict[str, int]:
        async with self.client.pipeline(transaction=False) as pipe:
            for state in JobState:
                pipe.zcard(self._state_key(queue, state))
            results = await pipe.execute()
        return {state.value: int(count) for state, count in zip(JobState, results)}

    async def obliterate(self, queue: str) -> int:
        job_keys = [key async for key in self.client.scan_iter(f"{self._key_prefix}:{queue}:job:*")]
        state_keys = [self._state_key(queue, state) for state in JobState]
        if job_keys:
            await self.client.delete(*job_keys)
        await self.client.delete(*state_keys, self._keys_key(queue))
        return len(job_keys)


# =============================================================================
# In-Memory
# =============================================================================


class InMemoryQueueBackend:
    """
    Queue backend for development and tests.

    Same semantics as RedisQueueBackend, but state lives in this process
    only. Jobs are copied on the way in and out, as if serialized.
    """

    def __init__(self):
        self._jobs: dict[str, dict[str, QueueJob]] = {}
        self._states: dict[str, dict[JobState, dict[str, float]]] = {}
        self._keys: dict[str, dict[str, str]] = {}
        self._lock = asyncio.Lock()

    def _queue(self, queue: str) -> tuple[dict[str, QueueJob], dict[JobState, dict[str, float]], dict[str, str]]:
        if queue not in self._jobs:
            self._jobs[queue] = {}
            self._states[queue] = {state: {} for state in JobState}
            self._keys[queue] = {}
        return self._jobs[queue], self._states[queue], self._keys[queue]

    async def close(self) -> None:
        pass

    async def ping(self) -> bool:
        return True

    async def add(self, job: QueueJob, score: float) -> tuple[str, bool]:
        async with self._lock:
            jobs, states, keys = self._queue(job.queue)
            owner = keys.get(job.key)
            if owner is not None and owner in jobs:
                return owner, True
            keys[job.key] = job.id
            jobs[job.id] = job.model_copy(deep=True)
            states[job.state][job.id] = score
            return job.id, False

    async def claim(self, queue: str, now: float, lease_until: float) -> Optional[QueueJob]:
        async with self._lock:
            jobs, states, _ = self._queue(queue)

            delayed = states[JobState.DELAYED]
            for job_id in [j for j, available in delayed.items() if available <= now]:
                del delayed[job_id]
                jobs[job_id].state = JobState.WAITING
                states[JobState.WAITING][job_id] = now

            waiting = states[JobState.WAITING]
            if not waiting:
                return None
            job_id = min(waiting, key=waiting.get)
            del waiting[job_id]

            job = jobs[job_id]
            job.state = JobState.ACTIVE
            job.attempts_made += 1
            states[JobState.ACTIVE][job_id] = lease_until
            return job.model_copy(deep=True)

    async def move(
        self, job: QueueJob, source: JobState, target: JobState, score: float
    ) -> bool:
        async with self._lock:
            jobs, states, keys = self._queue(job.queue)
            if states[source].pop(job.id, None) is None:
                return False
            job.state = target
            jobs[job.id] = job.model_copy(deep=True)
            states[target][job.id] = score
            if target in TERMINAL_STATES and keys.get(job.key) == job.id:
                del keys[job.key]
            return True

    async def get(self, queue: str, job_id: str) -> Optional[QueueJob]:
        jobs, _, _ = self._queue(queue)
        job = jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def key_owner(self, queue: str, key: str) -> Optional[str]:
        _, _, keys = self._queue(queue)
        return keys.get(key)

    async def list_jobs(
        self,
        queue: str,
        state: JobState,
        max_score: Optional[float] = None,
    ) -> list[QueueJob]:
        jobs, states, _ = self._queue(queue)
        ordered = sorted(states[state].items(), key=lambda item: item[1])
        return [
            jobs[job_id].model_copy(deep=True)
            for job_id, score in ordered
            if max_score is None or score <= max_score
        ]

    async def remove(self, queue: str, state: JobState, job_ids: list[str]) -> int:
        async with self._lock:
            jobs, states, keys = self._queue(queue)
            removed = 0
            for job_id in job_ids:
                if states[state].pop(job_id, None) is None:
                    continue
                job = jobs.pop(job_id, None)
                if job is not None and keys.get(job.key) == job_id:
                    del keys[job.key]
                removed += 1
            return removed

    async def counts(self, queue: str) -> dict[str, int]:
        _, states, _ = self._queue(queue)
        return {state.value: len(states[state]) for state in JobState}

    async def obliterate(self, queue: str) -> int:
        async with self._lock:
            jobs, _, _ = self._queue(queue)
            count = len(jobs)
            del self._jobs[queue]
            del self._states[queue]
            del self._keys[queue]
            return count


