"""
Layer 4 – 价格分析层
在 StockContext 的收盘价序列上计算摘要指标，供代理拼装提示词。
批量报价只有一个价格点，此时仅返回最新价。
"""

import logging
import math
from typing import Any, Dict, List

import pandas as pd

from rating_service.models.domain import StockContext

logger = logging.getLogger(__name__)

_TRADING_DAYS = 252


class AnalysisLayer:
    """价格分析层"""

    def to_frame(self, context: StockContext) -> pd.DataFrame:
        """收盘价序列转为按日期升序的 DataFrame（列：date, close）"""
        if not context.price_series:
            return pd.DataFrame(columns=["date", "close"])
        df = pd.DataFrame(
            {"date": list(context.price_series.keys()), "close": list(context.price_series.values())}
        )
        df["date"] = pd.to_datetime(df["date"])
        return df.sort_values("date").reset_index(drop=True)

    def add_ma(self, df: pd.DataFrame, periods: List[int] = None) -> pd.DataFrame:
        """添加简单移动平均线"""
        if df.empty:
            return df
        df = df.copy()
        for p in (periods or [20, 50]):
            df[f"MA{p}"] = df["close"].rolling(window=p, min_periods=1).mean().round(4)
        return df

    def add_rsi(self, df: pd.DataFrame, period: int = 14) -> pd.DataFrame:
        """添加 RSI 指标"""
        if df.empty:
            return df
        df = df.copy()
        delta = df["close"].diff()
        gain = delta.clip(lower=0).rolling(window=period, min_periods=1).mean()
        loss = (-delta.clip(upper=0)).rolling(window=period, min_periods=1).mean()
        rsi = 100 - 100 / (1 + gain / loss)
        # 窗口内无下跌：有上涨记 100，持平记 50
        rsi = rsi.where(loss != 0, 100.0).where((loss != 0) | (gain != 0), 50.0)
        df[f"RSI{period}"] = rsi.round(4)
        return df

    def summarize(self, context: StockContext) -> Dict[str, Any]:
        """返回价格摘要；序列不足两点时只含最新价与样本数"""
        df = self.to_frame(context)
        if df.empty:
            return {}

        closes = df["close"]
        summary: Dict[str, Any] = {
            "last_close": round(float(closes.iloc[-1]), 4),
            "observations": int(len(df)),
        }
        if len(df) < 2:
            return summary

        df = self.add_rsi(self.add_ma(df))
        last = df.iloc[-1]
        returns = closes.pct_change().dropna()
        first = float(closes.iloc[0])
        summary.update({
            "change_pct": round((float(closes.iloc[-1]) / first - 1) * 100, 2) if first else None,
            "period_high": round(float(closes.max()), 4),
            "period_low": round(float(closes.min()), 4),
            "volatility_ann_pct": round(float(returns.std()) * math.sqrt(_TRADING_DAYS) * 100, 2)
            if len(returns) > 1 else None,
            "MA20": None if pd.isna(last["MA20"]) else float(last["MA20"]),
            "MA50": None if pd.isna(last["MA50"]) else float(last["MA50"]),
            "RSI14": None if pd.isna(last["RSI14"]) else float(last["RSI14"]),
        })
        return summary


def format_summary(summary: Dict[str, Any]) -> str:
    """摘要转为 "k: v" 逗号分隔文本，跳过空值"""
    return ", ".join(f"{k}: {v}" for k, v in summary.items() if v is not None)
