"""
ServiceNow Dashboard — Model Package

Plain data types only; nothing here talks to ServiceNow.

    fields     — FieldValue tagged union and display/value/sys_id accessors
    workflow   — Discovery Onboarding phases, WorkflowState, ActionDueInfo
    dashboard  — dashboard / widget JSON document constants and defaults
"""
