"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- 狀態機：集中管理每個房間的遊戲流程
- Registry：管理 Room 的生命週期
- Locks：並發控制工具
"""
