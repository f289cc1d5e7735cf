import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, Request

from metricslens.converters import ParserOptions
from metricslens.errors import (
    InvalidArgumentError,
    OutOfOrderSnapshotsError,
    ParseError,
    SnapshotNotFoundError,
)
from metricslens.events import Frame
from metricslens.formatters import format_delta, format_series_rate, format_time_span
from metricslens.internal.cardinality import (
    AnalysisOptions,
    CardinalityAnalysis,
    CostModel,
    RecommendationImpact,
)
from metricslens.internal.schemas import DiffResult, MetricDefinition, ParsedSnapshot
from metricslens.otlp.dependencies import OTLPUpload, read_otlp_upload
from metricslens.schemas import (
    DiffRatesResponse,
    DiffRequest,
    SeriesRate,
    SimulationRequest,
    SnapshotSummary,
)
from metricslens.services.explorer import Explorer

logger = logging.getLogger(__name__)
router = APIRouter(prefix='/v1')


def get_explorer(request: Request) -> Explorer:
    return request.app.state.explorer


ExplorerDep = Annotated[Explorer, Depends(get_explorer)]
SnapshotId = Annotated[str, Path(..., examples=['snapshot-1700000000000'])]


def _not_found(e: SnapshotNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e))


@router.post(
    '/snapshots',
    response_model=SnapshotSummary,
    status_code=201,
)
async def upload_snapshot(
    explorer: ExplorerDep,
    upload: Annotated[OTLPUpload, Depends(read_otlp_upload)],
    snapshot_id: Annotated[str | None, Query()] = None,
    timestamp: Annotated[int | None, Query(description='Epoch milliseconds')] = None,
    include_zero_values: Annotated[bool, Query()] = True,
    normalize_attributes: Annotated[bool, Query()] = True,
    frame: Annotated[Frame | None, Query()] = None,
    file_name: Annotated[str, Query()] = 'upload',
) -> SnapshotSummary:
    options = ParserOptions(
        snapshot_id=snapshot_id,
        timestamp=timestamp,
        include_zero_values=include_zero_values,
        normalize_attributes=normalize_attributes,
    )
    try:
        if upload.payload is not None:
            snapshot = await explorer.loader.load_payload(
                upload.payload, file_name, upload.size, options, frame
            )
        else:
            snapshot = await explorer.loader.load_json(
                upload.body or b'', file_name, options, frame
            )
    except ParseError as e:
        logger.warning(
            'Rejected snapshot upload', extra={'file_name': file_name, 'error': str(e)}
        )
        raise HTTPException(status_code=400, detail=str(e)) from e
    return SnapshotSummary.from_snapshot(snapshot)


@router.get('/snapshots', response_model=list[SnapshotSummary])
async def list_snapshots(explorer: ExplorerDep) -> list[SnapshotSummary]:
    return [
        SnapshotSummary.from_snapshot(snapshot)
        for snapshot in explorer.store.snapshots.values()
    ]


@router.delete('/snapshots')
async def clear_snapshots(explorer: ExplorerDep) -> dict[str, str]:
    explorer.clear()
    logger.info('All snapshots cleared')
    return {'status': 'cleared'}


@router.get(
    '/snapshots/{snapshot_id}',
    response_model=ParsedSnapshot,
    response_model_exclude_none=True,
)
async def get_snapshot(explorer: ExplorerDep, snapshot_id: SnapshotId) -> ParsedSnapshot:
    try:
        return explorer.store.get_snapshot(snapshot_id)
    except SnapshotNotFoundError as e:
        raise _not_found(e) from e


@router.delete('/snapshots/{snapshot_id}')
async def delete_snapshot(explorer: ExplorerDep, snapshot_id: SnapshotId) -> dict[str, str]:
    try:
        await explorer.loader.remove(snapshot_id)
    except SnapshotNotFoundError as e:
        raise _not_found(e) from e
    return {'removed': snapshot_id}


@router.get(
    '/definitions',
    response_model=dict[str, MetricDefinition],
    response_model_exclude_none=True,
)
async def get_definitions(explorer: ExplorerDep) -> dict[str, MetricDefinition]:
    return explorer.store.metric_definitions


@router.post(
    '/diffs',
    response_model=DiffResult,
    response_model_exclude_none=True,
)
async def compute_diff(explorer: ExplorerDep, request: DiffRequest) -> DiffResult:
    try:
        return await explorer.diff_runner.compute_for(
            request.snapshot_a_id, request.snapshot_b_id
        )
    except SnapshotNotFoundError as e:
        raise _not_found(e) from e
    except (OutOfOrderSnapshotsError, InvalidArgumentError) as e:
        logger.warning(
            'Rejected diff request',
            extra={
                'snapshot_a_id': request.snapshot_a_id,
                'snapshot_b_id': request.snapshot_b_id,
                'error': str(e),
            },
        )
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get(
    '/diffs/current',
    response_model=DiffResult,
    response_model_exclude_none=True,
)
async def get_current_diff(explorer: ExplorerDep) -> DiffResult:
    if explorer.store.current_diff is None:
        raise HTTPException(status_code=404, detail='No diff computed yet')
    return explorer.store.current_diff


@router.get(
    '/diffs/current/rates',
    response_model=DiffRatesResponse,
    response_model_exclude_none=True,
)
async def get_current_rates(explorer: ExplorerDep) -> DiffRatesResponse:
    diff = explorer.store.current_diff
    if diff is None:
        raise HTTPException(status_code=404, detail='No diff computed yet')

    rows = [
        SeriesRate(
            metric_name=metric.name,
            series_key=series.series_key,
            attributes=series.attributes,
            unit=metric.unit,
            value_a=series.value_a,
            value_b=series.value_b,
            delta=series.delta,
            rate=series.rate,
            reset_detected=bool(series.reset_detected),
            rate_display=format_series_rate(series, metric.unit),
            delta_display=format_delta(series.delta, metric.unit),
        )
        for metric in diff.metrics.values()
        for series in metric.series.values()
    ]
    return DiffRatesResponse(
        snapshot_a_id=diff.snapshot_a_id,
        snapshot_b_id=diff.snapshot_b_id,
        time_gap_ms=diff.time_gap_ms,
        time_span=format_time_span(diff.time_gap_ms),
        series=rows,
    )


@router.get(
    '/snapshots/{snapshot_id}/cardinality',
    response_model=CardinalityAnalysis,
    response_model_exclude_none=True,
)
async def get_cardinality(
    explorer: ExplorerDep, snapshot_id: SnapshotId
) -> CardinalityAnalysis:
    analysis = explorer.store.get_analysis(snapshot_id)
    if analysis is None:
        raise HTTPException(
            status_code=404, detail=f'No cardinality analysis for {snapshot_id}'
        )
    return analysis


@router.post(
    '/snapshots/{snapshot_id}/cardinality',
    response_model=CardinalityAnalysis,
    response_model_exclude_none=True,
)
async def analyze_snapshot(
    explorer: ExplorerDep,
    snapshot_id: SnapshotId,
    options: Annotated[AnalysisOptions | None, Body()] = None,
) -> CardinalityAnalysis:
    try:
        return await explorer.cardinality_runner.analyze(snapshot_id, options)
    except SnapshotNotFoundError as e:
        raise _not_found(e) from e


@router.post(
    '/snapshots/{snapshot_id}/simulate',
    response_model=RecommendationImpact,
)
async def simulate(
    explorer: ExplorerDep, snapshot_id: SnapshotId, request: SimulationRequest
) -> RecommendationImpact:
    try:
        return await explorer.cardinality_runner.simulate(
            snapshot_id, request.recommendations, request.cost_model
        )
    except SnapshotNotFoundError as e:
        raise _not_found(e) from e


@router.get('/cost-model', response_model=CostModel)
async def get_cost_model(explorer: ExplorerDep) -> CostModel:
    return explorer.store.cost_model


@router.put('/cost-model', response_model=CostModel)
async def put_cost_model(explorer: ExplorerDep, cost_model: CostModel) -> CostModel:
    explorer.store.set_cost_model(cost_model)
    logger.info('Cost model updated', extra=cost_model.model_dump())
    return cost_model
