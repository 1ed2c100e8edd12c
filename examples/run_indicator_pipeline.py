"""指标流水线示例脚本

演示完整数据流：
1. 生成模拟 K 线数据
2. 批量执行多阶段指标流水线
3. 逐根 K 线流式推进同一条流水线，并与批量结果对比
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta, timezone
from typing import List

from quantindicators import OHLCV, pipeline
from quantindicators.pipeline import chronological_merge, init_streaming, stream_execute


def generate_candles(count: int = 120, seed: int = 7) -> List[OHLCV]:
    """随机游走生成 1 小时 K 线"""
    rng = random.Random(seed)
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    candles = []
    close = 100.0
    for idx in range(count):
        open_price = close
        close = round(open_price + rng.gauss(0, 1), 2)
        candles.append(
            OHLCV(
                open=open_price,
                high=round(max(open_price, close) + rng.random(), 2),
                low=round(min(open_price, close) - rng.random(), 2),
                close=close,
                volume=rng.randint(500, 1500),
                timestamp=start + timedelta(hours=idx),
            )
        )
    return candles


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    print("=" * 60)
    print("指标流水线示例")
    print("=" * 60)

    config = (
        pipeline.new()
        .add_stage("sma_fast", "sma", {"period": 5})
        .add_stage("sma_slow", "sma", {"period": 20})
        .add_stage("rsi", "rsi", {"period": 14}, dependencies=["sma_fast"])
        .add_stage("macd", "macd")
        .add_stage("bb", "bollinger", {"period": 20, "multiplier": 2})
        .add_stage("atr", "atr", {"period": 14})
        .add_stage("wma", "talipp:wma", {"period": 10})
        .configure({"execution_mode": "parallel", "error_handling": "continue_on_error"})
        .build()
    )
    print(f"\n执行顺序: {list(config.execution_order)}")
    print(f"依赖层: {[list(layer) for layer in config.execution_layers]}")

    candles = generate_candles()

    # 批量执行
    executor = pipeline.PipelineExecutor(aggregator=chronological_merge)
    result = executor.execute(config, candles)
    print(f"\n{'─' * 60}")
    print("批量执行结果")
    print("─" * 60)
    for stage_id, items in result.stage_results.items():
        latest = items[-1].value if items else None
        print(f"  {stage_id:10s} 结果数={len(items):4d}  最新值={latest}")
    print(f"  合并后条目数: {len(result.aggregated_result)}")
    print(f"  统计: {result.execution_metrics.to_dict()}")

    # 第二次执行命中缓存
    cached = executor.execute(config, candles)
    hits = sum(m.cache_hits for m in cached.execution_metrics.stage_metrics.values())
    print(f"  再次执行缓存命中: {hits}/{len(config.stages)}")

    # 流式执行
    print(f"\n{'─' * 60}")
    print("流式执行")
    print("─" * 60)
    state = init_streaming(config)
    last = {}
    for candle in candles:
        outputs, state = stream_execute(state, candle)
        last = outputs

    for stage_id, output in last.items():
        batch_latest = result.stage_results[stage_id][-1] if result.stage_results[stage_id] else None
        same = output == batch_latest
        print(f"  {stage_id:10s} 流式={output.value if output else None}  与批量一致={same}")
    print(f"  流式统计: total_executions={state.metrics.total_executions}")

    print("\n" + "=" * 60)
    print("完成")
    print("=" * 60)


if __name__ == "__main__":
    main()
