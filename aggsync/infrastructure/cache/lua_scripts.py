"""
Lua scripts executed atomically inside Redis.

Each script combines a conditional read with a conditional write so no
other client can interleave between the two.
"""

# KEYS[1] = lock key, ARGV[1] = owner token
RELEASE_LOCK_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""

# KEYS[1] = lock key, KEYS[2] = hash key, KEYS[3] = dirty flag key
# ARGV[1] = hash field, ARGV[2] = delta, ARGV[3] = dirty flag value
# Returns {status, value}: 0 applied, 1 lock held, 2 field missing.
INCREMENT_IF_READY_SCRIPT = """
if redis.call("EXISTS", KEYS[1]) == 1 then
    redis.call("SET", KEYS[3], ARGV[3])
    return {1, 0}
end

if redis.call("HEXISTS", KEYS[2], ARGV[1]) == 0 then
    redis.call("SET", KEYS[3], ARGV[3])
    return {2, 0}
end

return {0, redis.call("HINCRBY", KEYS[2], ARGV[1], tonumber(ARGV[2]))}
"""

INCREMENT_STATUS_APPLIED = 0
INCREMENT_STATUS_LOCKED = 1
INCREMENT_STATUS_MISSING = 2

# KEYS[1] = hash key, ARGV[1] = hash field, ARGV[2] = delta
# Returns {status, value} with the statuses above; never creates the hash.
INCREMENT_IF_EXISTS_SCRIPT = """
if redis.call("EXISTS", KEYS[1]) == 0 then
    return {2, 0}
end

return {0, redis.call("HINCRBY", KEYS[1], ARGV[1], tonumber(ARGV[2]))}
"""
