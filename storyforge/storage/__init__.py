from storyforge.storage.records import InMemoryRecordStore, JsonFileRecordStore, RecordStore

__all__ = ["InMemoryRecordStore", "JsonFileRecordStore", "RecordStore"]
