"""Schema v2 - Asset registry tables.

Ownership, metadata URIs and transfer approvals of assets, so the registry
survives restarts together with the listings that point at it.
"""

schema = {
    'version': 2,
    'tables': [
        {
            'name': 'assets',
            'columns': [
                {'name': 'id', 'type': 'INT8', 'primary_key': True},
                {'name': 'owner_address', 'type': 'TEXT', 'nullable': False},
                {'name': 'uri', 'type': 'TEXT', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_assets_owner', 'columns': ['owner_address']}
            ]
        },
        {
            'name': 'asset_approvals',
            'columns': [
                {'name': 'asset_id', 'type': 'INT8', 'primary_key': True},
                {'name': 'operator_address', 'type': 'TEXT', 'nullable': False}
            ],
            'foreign_keys': [
                {'columns': ['asset_id'], 'references': 'assets(id)'}
            ]
        },
        {
            'name': 'operator_approvals',
            'columns': [
                {'name': 'owner_address', 'type': 'TEXT', 'nullable': False},
                {'name': 'operator_address', 'type': 'TEXT', 'nullable': False}
            ],
            'primary_key': ['owner_address', 'operator_address']
        }
    ],
    'triggers': [
        {
            'name': 'update_assets_timestamp',
            'table': 'assets',
            'timing': 'BEFORE',
            'event': 'UPDATE',
            'function_name': 'update_assets_updated_at',
            'function_body': '''
                BEGIN
                    NEW.updated_at = now();
                    RETURN NEW;
                END;
            '''
        }
    ],
    'migrations': [
        # Migration SQL from v1 to v2
        '''
        CREATE TABLE IF NOT EXISTS assets (
            id INT8 NOT NULL,
            owner_address TEXT NOT NULL,
            uri TEXT NOT NULL,
            created_at TIMESTAMP NOT NULL DEFAULT now(),
            updated_at TIMESTAMP NOT NULL DEFAULT now(),
            PRIMARY KEY (id)
        );

        CREATE INDEX IF NOT EXISTS idx_assets_owner ON assets(owner_address);

        CREATE TABLE IF NOT EXISTS asset_approvals (
            asset_id INT8 NOT NULL REFERENCES assets(id),
            operator_address TEXT NOT NULL,
            PRIMARY KEY (asset_id)
        );

        CREATE TABLE IF NOT EXISTS operator_approvals (
            owner_address TEXT NOT NULL,
            operator_address TEXT NOT NULL,
            PRIMARY KEY (owner_address, operator_address)
        );

        CREATE OR REPLACE FUNCTION update_assets_updated_at()
        RETURNS TRIGGER
        AS $$
        BEGIN
            NEW.updated_at = now();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;

        DROP TRIGGER IF EXISTS update_assets_timestamp ON assets;
        CREATE TRIGGER update_assets_timestamp
        BEFORE UPDATE ON assets
        FOR EACH ROW
        EXECUTE FUNCTION update_assets_updated_at();
        '''
    ]
}
