"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- OutcomeService：題目洗牌、輪盤抽獎
- ScoringService：答案判定、贏家計算
- NamingService：房間代碼與名稱生成
- QuestionBank：題庫載入
"""
