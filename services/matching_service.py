"""
配對服務：計算兩位參與者的政治距離

純計算邏輯，只用於配對 / 分析，不會阻擋房間建立
"""
import math
from typing import Optional

from services.directory import PoliticalScores


def political_distance(a: Optional[PoliticalScores], b: Optional[PoliticalScores]) -> float:
    """
    計算政治光譜上的歐氏距離

    距離 = sqrt(Δeconomic² + Δauthoritarian²)

    任何一方沒有分數（或分數不完整）時，距離為 0

    範例：
        (10, 20) vs (-20, -20) -> 50.0
        (10, 20) vs None -> 0.0
    """
    if a is None or b is None:
        return 0.0
    scores = (a.economic, a.authoritarian, b.economic, b.authoritarian)
    if any(score is None for score in scores):
        return 0.0

    economic_diff = abs(a.economic - b.economic)
    authoritarian_diff = abs(a.authoritarian - b.authoritarian)
    return math.sqrt(economic_diff ** 2 + authoritarian_diff ** 2)
