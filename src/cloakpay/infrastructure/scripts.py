"""Redis Lua scripts used by the key-value store.

Return codes follow one convention:

    - 0: Stale - the precondition did not hold; nothing was written.
    - 1: Saved.
    - 2: Missing - the target key does not exist.
"""

STORE_SCRIPTS = {
    # KEYS[1] entity key; ARGV[1] JSON field; ARGV[2] expected value; ARGV[3] new JSON
    "compare_and_set": """
        local current_raw = redis.call('GET', KEYS[1])
        if not current_raw then
            return 2
        end
        local current = cjson.decode(current_raw)
        if tostring(current[ARGV[1]]) ~= ARGV[2] then
            return 0
        end
        redis.call('SET', KEYS[1], ARGV[3])
        return 1
    """,
    # KEYS[1] key; ARGV[1] value the caller still expects to own
    "delete_if_equals": """
        if redis.call('GET', KEYS[1]) ~= ARGV[1] then
            return 0
        end
        redis.call('DEL', KEYS[1])
        return 1
    """,
}
