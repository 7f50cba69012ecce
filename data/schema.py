# Database schema definitions (SQL Server)
#
# Users and posts are stored as whole JSON documents alongside the handful of
# columns the queries filter and sort on. Notifications are flat rows.

USERS_TABLE_SCHEMA = '''
    IF OBJECT_ID(N'dbo.users', N'U') IS NULL
    CREATE TABLE dbo.users (
        id NVARCHAR(32) NOT NULL PRIMARY KEY,
        username NVARCHAR(30) NOT NULL,
        username_key NVARCHAR(30) NOT NULL UNIQUE,   -- lower-cased username
        email NVARCHAR(320) NOT NULL UNIQUE,         -- stored lower-cased
        is_active BIT NOT NULL DEFAULT 1,
        created_at DATETIME2 NOT NULL,
        document NVARCHAR(MAX) NOT NULL              -- JSON User document
    )
'''

POSTS_TABLE_SCHEMA = '''
    IF OBJECT_ID(N'dbo.posts', N'U') IS NULL
    CREATE TABLE dbo.posts (
        id NVARCHAR(32) NOT NULL PRIMARY KEY,
        author_id NVARCHAR(32) NOT NULL,
        is_public BIT NOT NULL DEFAULT 1,
        is_deleted BIT NOT NULL DEFAULT 0,
        created_at DATETIME2 NOT NULL,
        search_terms NVARCHAR(MAX) NOT NULL,         -- ' stem1 stem2 ... ' for LIKE pre-filtering
        document NVARCHAR(MAX) NOT NULL              -- JSON Post aggregate with embedded comments
    )
'''

POSTS_FEED_INDEX_SCHEMA = '''
    IF NOT EXISTS (SELECT 1 FROM sys.indexes WHERE name = N'ix_posts_feed')
    CREATE INDEX ix_posts_feed ON dbo.posts (is_deleted, created_at DESC)
'''

POSTS_AUTHOR_INDEX_SCHEMA = '''
    IF NOT EXISTS (SELECT 1 FROM sys.indexes WHERE name = N'ix_posts_author')
    CREATE INDEX ix_posts_author ON dbo.posts (author_id, is_deleted, created_at DESC)
'''

NOTIFICATIONS_TABLE_SCHEMA = '''
    IF OBJECT_ID(N'dbo.notifications', N'U') IS NULL
    CREATE TABLE dbo.notifications (
        id NVARCHAR(32) NOT NULL PRIMARY KEY,
        recipient_id NVARCHAR(32) NOT NULL,
        sender_id NVARCHAR(32) NOT NULL,
        kind NVARCHAR(20) NOT NULL CHECK (kind IN ('like', 'comment', 'follow', 'mention', 'post_shared')),
        post_id NVARCHAR(32) NULL,                   -- weak reference, no foreign key
        comment_id NVARCHAR(32) NULL,                -- weak reference, no foreign key
        message NVARCHAR(500) NOT NULL,
        is_read BIT NOT NULL DEFAULT 0,
        created_at DATETIME2 NOT NULL
    )
'''

NOTIFICATIONS_INDEX_SCHEMA = '''
    IF NOT EXISTS (SELECT 1 FROM sys.indexes WHERE name = N'ix_notifications_recipient')
    CREATE INDEX ix_notifications_recipient ON dbo.notifications (recipient_id, is_read, created_at DESC)
'''

ALL_SCHEMAS = [
    USERS_TABLE_SCHEMA,
    POSTS_TABLE_SCHEMA,
    POSTS_FEED_INDEX_SCHEMA,
    POSTS_AUTHOR_INDEX_SCHEMA,
    NOTIFICATIONS_TABLE_SCHEMA,
    NOTIFICATIONS_INDEX_SCHEMA,
]
