#!/usr/bin/env python3
"""
Ethio Home Backend Application Runner
"""
import os
from ethio_home import create_app, db
from ethio_home.models import User, Property, InterestForm, Payment, Selling, SubscriptionPlan, Review

app = create_app()

@app.shell_context_processor
def make_shell_context():
    return {
        'db': db,
        'User': User,
        'Property': Property,
        'InterestForm': InterestForm,
        'Payment': Payment,
        'Selling': Selling,
        'SubscriptionPlan': SubscriptionPlan,
        'Review': Review
    }

if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_ENV') == 'development'
    app.run(host='0.0.0.0', port=port, debug=debug)
