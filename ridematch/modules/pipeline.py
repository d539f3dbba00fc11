"""
Match pipeline: score every candidate, keep the ones above threshold, fetch
detour routes for the valid-order ones concurrently, then rank.

Candidate-level failures (provider errors, timeouts, deadline expiry) only
degrade that candidate's result; input errors fail the whole request.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .detour import DetourEvaluator, DetourOutcome
from .errors import InvalidInputError, RouteProviderError
from .geometry import ChordProjection, ProjectionStrategy, is_valid_order, select_projection
from .models import CandidateRoute, MatchConfig, MatchResult, MatchState, PassengerQuery, RouteStatus
from .route_client import RouteClient
from .schedule import minutes_match
from .scoring import MatchConditions, is_included, rank, score

logger = logging.getLogger(__name__)


@dataclass
class ScoredCandidate:
    candidate: CandidateRoute
    result: MatchResult
    included: bool
    strategy: str


class MatchPipeline:
    """Orchestrates scoring, detour fan-out and ranking for one query at a time"""

    def __init__(self, route_client: Optional[RouteClient] = None):
        self.route_client = route_client

        self.matching_stats = {
            "queries": 0,
            "candidates_scored": 0,
            "candidates_excluded": 0,
            "routes_resolved": 0,
            "routes_degraded": 0,
            "deadline_cancellations": 0,
        }

    def _projection_for(self, candidate: CandidateRoute, config: MatchConfig) -> ProjectionStrategy:
        if config.use_cached_geometry and self.route_client is not None:
            cached = self.route_client.peek(candidate.pickup, candidate.dropoff)
            return select_projection(candidate, cached)
        return ChordProjection(candidate.pickup, candidate.dropoff)

    def score_candidate(self, query: PassengerQuery, candidate: CandidateRoute, config: MatchConfig) -> ScoredCandidate:
        """Geometry and schedule scoring; pure apart from an optional cache peek"""
        strategy = self._projection_for(candidate, config)
        pickup = strategy.project(query.pickup)
        dropoff = strategy.project(query.dropoff)

        conditions = MatchConditions(
            pickup_on_route=pickup.distance_km <= config.proximity_threshold_km,
            dropoff_on_route=dropoff.distance_km <= config.proximity_threshold_km,
            time_match=minutes_match(query.schedule.minutes, candidate.schedule.minutes, config.time_window_min),
            day_match=bool(query.schedule.days & candidate.schedule.days),
        )
        match_score, reasons = score(conditions)
        included = is_included(match_score, config.min_match_score)

        result = MatchResult(
            candidate_ref=candidate.id,
            match_score=match_score,
            pickup_distance_km=pickup.distance_km,
            dropoff_distance_km=dropoff.distance_km,
            is_valid_order=is_valid_order(pickup.projection_param, dropoff.projection_param, config.order_tolerance),
            reasons=reasons,
            owner_rating=candidate.owner_rating,
            state=MatchState.INCLUDED_NO_ROUTE if included else MatchState.SCORED_EXCLUDED,
        )
        return ScoredCandidate(candidate=candidate, result=result, included=included, strategy=strategy.name)

    async def match(self,
                    query: PassengerQuery,
                    candidates: Sequence[CandidateRoute],
                    config: Optional[MatchConfig] = None) -> List[MatchResult]:
        """
        Produce ranked matches for a passenger query.

        Returns an empty list when nothing clears the inclusion threshold.
        """
        config = config or MatchConfig()
        if not isinstance(query, PassengerQuery):
            raise InvalidInputError("query must be a PassengerQuery")
        for candidate in candidates:
            if not isinstance(candidate, CandidateRoute):
                raise InvalidInputError("candidates must be CandidateRoute instances")

        start_time = time.time()
        self.matching_stats["queries"] += 1

        # Step 1 + 2: synchronous scoring and threshold filter
        scored = [self.score_candidate(query, candidate, config) for candidate in candidates]
        self.matching_stats["candidates_scored"] += len(scored)

        included = [s for s in scored if s.included]
        self.matching_stats["candidates_excluded"] += len(scored) - len(included)

        logger.info(f"Scored {len(scored)} candidates, {len(included)} above threshold {config.min_match_score}")

        # Step 3: detour fan-out for valid-order candidates
        routable = [s for s in included if s.result.is_valid_order]
        if routable and self.route_client is not None:
            outcomes = await self._evaluate_detours(query, routable, config)
            for entry in routable:
                self._apply_outcome(entry.result, outcomes.get(id(entry)))

        # Step 4: rank
        results = rank([s.result for s in included], config.tie_break)

        elapsed = time.time() - start_time
        logger.info(f"Matching completed: {len(results)} matches in {elapsed:.2f}s")
        return results

    async def _evaluate_detours(self,
                                query: PassengerQuery,
                                routable: List[ScoredCandidate],
                                config: MatchConfig) -> Dict[int, Optional[DetourOutcome]]:
        evaluator = DetourEvaluator(self.route_client, config)
        semaphore = asyncio.Semaphore(config.max_concurrent_fetches)

        tasks = {
            asyncio.ensure_future(evaluator.evaluate(entry.candidate, query, semaphore)): entry
            for entry in routable
        }

        done, pending = await asyncio.wait(tasks.keys(), timeout=config.match_deadline_s)

        if pending:
            logger.warning(f"Match deadline of {config.match_deadline_s}s reached, cancelling {len(pending)} route evaluations")
            self.matching_stats["deadline_cancellations"] += len(pending)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: Dict[int, Optional[DetourOutcome]] = {}
        for task, entry in tasks.items():
            if task in pending or task.cancelled():
                outcomes[id(entry)] = None
                continue
            error = task.exception()
            if error is not None:
                logger.error(f"Detour evaluation failed for candidate {entry.candidate.id}: {error!r}")
                outcomes[id(entry)] = DetourOutcome(
                    error=RouteProviderError(f"Detour evaluation failed: {error!r}", status="INTERNAL_ERROR")
                )
            else:
                outcomes[id(entry)] = task.result()
        return outcomes

    def _apply_outcome(self, result: MatchResult, outcome: Optional[DetourOutcome]):
        # None only for evaluations cut off by the match deadline
        if outcome is None:
            result.route_status = RouteStatus.DEGRADED
            result.route_error = "CANCELLED"
            self.matching_stats["routes_degraded"] += 1
            return

        result.original_route = outcome.original_route
        result.recommended_route = outcome.recommended_route
        result.detour_distance_km = outcome.detour_distance_km
        result.detour_duration_min = outcome.detour_duration_min

        if outcome.resolved:
            result.state = MatchState.INCLUDED_WITH_ROUTE
            result.route_status = RouteStatus.RESOLVED
            self.matching_stats["routes_resolved"] += 1
        else:
            result.route_status = RouteStatus.DEGRADED
            result.route_error = outcome.error.status if outcome.error is not None else None
            self.matching_stats["routes_degraded"] += 1


async def find_matches(query: PassengerQuery,
                       candidates: Sequence[CandidateRoute],
                       config: Optional[MatchConfig] = None,
                       route_client: Optional[RouteClient] = None) -> List[MatchResult]:
    """Rank candidate driver trips for a passenger query"""
    return await MatchPipeline(route_client).match(query, candidates, config)
