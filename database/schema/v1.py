"""Schema v1 - Initial marketplace schema.

This version includes tables for:
- Marketplace counters, fee and held balance (single row)
- Listings, retired ones kept as tombstones
- Active listing index by asset
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'market_state',
            'columns': [
                {'name': 'id', 'type': 'INT8', 'primary_key': True},
                {'name': 'next_asset_id', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'next_listing_id', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'fee_basis_points', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'balance', 'type': 'NUMERIC', 'nullable': False, 'default': '0'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ]
        },
        {
            'name': 'listings',
            'columns': [
                {'name': 'id', 'type': 'INT8', 'primary_key': True},
                {'name': 'asset_id', 'type': 'INT8', 'nullable': False},
                {'name': 'seller_address', 'type': 'TEXT', 'nullable': False},
                {'name': 'price', 'type': 'NUMERIC', 'nullable': False},
                {'name': 'active', 'type': 'BOOLEAN', 'nullable': False, 'default': 'true'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_listings_asset', 'columns': ['asset_id']},
                {'name': 'idx_listings_seller', 'columns': ['seller_address']}
            ]
        },
        {
            'name': 'active_listings',
            'columns': [
                {'name': 'asset_id', 'type': 'INT8', 'primary_key': True},
                {'name': 'listing_id', 'type': 'INT8', 'nullable': False, 'unique': True}
            ],
            'foreign_keys': [
                {'columns': ['listing_id'], 'references': 'listings(id)'}
            ]
        }
    ],
    'triggers': [
        {
            'name': 'update_listings_timestamp',
            'table': 'listings',
            'timing': 'BEFORE',
            'event': 'UPDATE',
            'function_name': 'update_listings_updated_at',
            'function_body': '''
                BEGIN
                    NEW.updated_at = now();
                    RETURN NEW;
                END;
            '''
        }
    ]
}
