"""
服務層

這個 package 包含純計算邏輯與外部協作者，不負責狀態轉換：
- Directory：意見、主題、使用者資料的唯讀來源
- MatchingService：政治距離
- FallacyService：邏輯謬誤目錄
- StatsService：使用者辯論評分統計
- NotificationService：站外通知
"""
