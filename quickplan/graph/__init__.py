"""
Top-level Quick Plan orchestrator.

Ties the conversation layer, the enrichment coordinator and the snapshot
store together behind one facade:
    answer -> enrich -> next question ... -> review -> finalize
"""
