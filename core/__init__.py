"""
核心業務邏輯層

這個 package 包含辯論房的所有核心業務邏輯：
- StateMachine / Consensus：純邏輯的狀態轉換與投票判定
- RoomStore：持久化查詢
- RoomManager：單一房間的 transaction（鎖定 → 檢查 → 寫入）
- RoomOrchestrator：對外介面（寫入 → 推播 → 通知）
- Delivery：WebSocket 連線與推播
- LifecycleSweeper：定期封存
- Locks：並發控制工具
"""
